"""Embedding provider with a lazily populated, single-flight model cache.

Two backends are supported:

* sentence-transformers models, loaded locally (the default)
* OpenAI embedding models, addressed as ``"openai:<model>"``

Model objects are expensive to build, so each provider keeps one instance per
model identifier for its whole lifetime. Concurrent first requests for the
same model wait on a per-model lock instead of loading duplicates.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from typing import Protocol

from openai import OpenAI, OpenAIError

from rhetoric.config import settings
from rhetoric.embeddings.vectors import normalize_vector
from rhetoric.errors import EmbeddingError, MissingDependencyError, RhetoricError

logger = logging.getLogger(__name__)

MODEL_PRESETS: dict[str, str] = {
    "fast": "sentence-transformers/all-MiniLM-L6-v2",  # 384 dimensions
    "balanced": "sentence-transformers/all-mpnet-base-v2",  # 768 dimensions
}

OPENAI_PREFIX = "openai:"


class EmbeddingBackend(Protocol):
    """Anything that turns a batch of texts into raw (unnormalised) vectors."""

    model_id: str

    def encode(self, texts: list[str]) -> list[list[float]]: ...


class SentenceTransformerBackend:
    """Local sentence-transformers model with mean pooling."""

    def __init__(self, model_name: str) -> None:
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError as exc:
            raise MissingDependencyError(
                "sentence-transformers is not installed. Run: pip install sentence-transformers"
            ) from exc

        self.model_id = model_name
        self.model = SentenceTransformer(model_name)

    @property
    def dimensions(self) -> int:
        return int(self.model.get_sentence_embedding_dimension() or 0)

    def encode(self, texts: list[str]) -> list[list[float]]:
        # Normalisation is applied by the provider so both backends behave alike.
        embs = self.model.encode(list(texts), convert_to_numpy=True, normalize_embeddings=False)
        return embs.astype("float32").tolist()


class OpenAIEmbeddingBackend:
    """OpenAI embeddings API, e.g. ``openai:text-embedding-3-small``."""

    def __init__(self, model_name: str, api_key: str | None = None) -> None:
        self.model_id = f"{OPENAI_PREFIX}{model_name}"
        self.model_name = model_name
        self.client = OpenAI(api_key=api_key or settings.openai_api_key or None)

    def encode(self, texts: list[str]) -> list[list[float]]:
        response = self.client.embeddings.create(input=texts, model=self.model_name)
        return [item.embedding for item in response.data]


def resolve_model_id(model: str | None = None) -> str:
    """Expand preset names (``"fast"``, ``"balanced"``) and apply the default."""
    model = model or settings.embedding_model
    return MODEL_PRESETS.get(model, model)


def load_backend(model_id: str) -> EmbeddingBackend:
    """Build the backend for *model_id*. Blocking; call from a worker thread."""
    if model_id.startswith(OPENAI_PREFIX):
        try:
            return OpenAIEmbeddingBackend(model_id[len(OPENAI_PREFIX) :])
        except OpenAIError as exc:
            raise EmbeddingError(f"OpenAI client unavailable: {exc}") from exc
    return SentenceTransformerBackend(model_id)


class EmbeddingProvider:
    """Encodes texts, owning the cache of loaded embedding models."""

    def __init__(
        self,
        backend_factory: Callable[[str], EmbeddingBackend] = load_backend,
        default_model: str | None = None,
        normalize: bool | None = None,
    ) -> None:
        self._factory = backend_factory
        self.default_model = resolve_model_id(default_model)
        self.normalize = settings.embedding_normalize if normalize is None else normalize
        self._models: dict[str, EmbeddingBackend] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def loaded_models(self) -> list[str]:
        return list(self._models)

    async def get_model(self, model: str | None = None) -> EmbeddingBackend:
        """Return the cached backend for *model*, loading it on first use."""
        model_id = resolve_model_id(model or self.default_model)
        backend = self._models.get(model_id)
        if backend is not None:
            return backend

        lock = self._locks.setdefault(model_id, asyncio.Lock())
        async with lock:
            backend = self._models.get(model_id)
            if backend is not None:
                return backend

            logger.info("Loading embedding model %s", model_id)
            started = time.perf_counter()
            try:
                backend = await asyncio.to_thread(self._factory, model_id)
            except RhetoricError:
                raise
            except Exception as exc:
                raise EmbeddingError(f"Failed to load embedding model {model_id}: {exc}") from exc

            self._models[model_id] = backend
            logger.info("Loaded %s in %.2fs", model_id, time.perf_counter() - started)
            return backend

    async def encode(
        self,
        texts: Sequence[str],
        model: str | None = None,
        normalize: bool | None = None,
    ) -> list[list[float]]:
        """Embed *texts* in one batch.

        Args:
            texts: Strings to embed.
            model: Model identifier or preset; defaults to the provider's model.
            normalize: Apply L2 normalisation (zero vectors pass through
                unchanged). Defaults to the provider setting.

        Returns:
            One vector per input text, in order.

        Raises:
            EmbeddingError: The model could not be loaded or inference failed.
        """
        if not texts:
            return []

        backend = await self.get_model(model)
        try:
            vectors = await asyncio.to_thread(backend.encode, list(texts))
        except RhetoricError:
            raise
        except Exception as exc:
            raise EmbeddingError(f"Failed to compute embeddings: {exc}") from exc

        if len(vectors) != len(texts):
            raise EmbeddingError(f"Model {backend.model_id} returned {len(vectors)} vectors for {len(texts)} texts")

        do_normalize = self.normalize if normalize is None else normalize
        if do_normalize:
            return [normalize_vector(v) for v in vectors]
        return [[float(x) for x in v] for v in vectors]
