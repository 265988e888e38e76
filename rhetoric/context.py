"""Application context: the shared embedding model cache and store handles."""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache

from rhetoric.embeddings.provider import EmbeddingProvider
from rhetoric.exemplars.store import StoreRegistry


@dataclass
class AppContext:
    """Owns process-level state so nothing lives in module globals.

    Build one per application (API process, CLI run, test) and pass it to
    the analyzer; stores opened through it share its embedding provider.
    """

    embeddings: EmbeddingProvider = field(default_factory=EmbeddingProvider)
    stores: StoreRegistry = field(init=False)

    def __post_init__(self) -> None:
        self.stores = StoreRegistry(self.embeddings)


@lru_cache(maxsize=1)
def get_context() -> AppContext:
    """Return the default process-wide context."""
    return AppContext()
