"""JSON-file exemplar collections with similarity search.

One collection lives in one JSON file::

    {"version": "1.0", "revision": 3, "savedAt": "...", "exemplarCount": 12,
     "moveTypeCounts": {"concession": 4, ...}, "exemplars": [...]}

``ExemplarStore`` is the handle for one file. Mutations (add, remove, save,
embedding backfill) are serialised through the handle's lock and persisted
immediately. ``revision`` implements optimistic versioning across handles and
processes: a save fails with ``StoreConflictError`` when the file was
rewritten by someone else since this handle last read or wrote it.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections.abc import Iterable, Sequence
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from rhetoric.embeddings.provider import EmbeddingProvider, resolve_model_id
from rhetoric.embeddings.vectors import similarity_matrix
from rhetoric.errors import (
    StoreConflictError,
    StoreError,
    ValidationError,
    format_validation_errors,
    from_pydantic,
)
from rhetoric.exemplars.models import Exemplar, ExemplarFields, Match, StoreStats

logger = logging.getLogger(__name__)

FORMAT_VERSION = "1.0"


def count_by(values: Iterable[str | None]) -> dict[str, int]:
    """Count occurrences, bucketing missing values under ``"unknown"``."""
    counts: dict[str, int] = {}
    for value in values:
        key = str(value or "unknown")
        counts[key] = counts.get(key, 0) + 1
    return counts


def _coerce_fields(fields: ExemplarFields | dict[str, Any]) -> ExemplarFields:
    if isinstance(fields, ExemplarFields):
        return fields
    try:
        return ExemplarFields.model_validate(fields)
    except PydanticValidationError as exc:
        raise from_pydantic(exc, "Invalid exemplar") from exc


class ExemplarStore:
    """Handle for one exemplar collection file."""

    def __init__(self, path: str | Path, embeddings: EmbeddingProvider, model: str | None = None) -> None:
        self.path = Path(path)
        self.embeddings = embeddings
        self.model_id = resolve_model_id(model or embeddings.default_model)
        self._exemplars: list[Exemplar] = []
        self._revision = 0
        self._loaded = False
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._exemplars)

    @property
    def revision(self) -> int:
        return self._revision

    # ------------------------------------------------------------------
    # File I/O (blocking; always run via asyncio.to_thread)
    # ------------------------------------------------------------------

    def _read_file(self) -> dict[str, Any] | None:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StoreError(f"Cannot read exemplar store {self.path}: {exc}") from exc

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StoreError(f"Exemplar store {self.path} is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise StoreError(f"Exemplar store {self.path} must contain a JSON object")
        return data

    def _parse(self, data: dict[str, Any] | None) -> tuple[list[Exemplar], int]:
        if data is None:
            return [], 0

        records = data.get("exemplars", [])
        if not isinstance(records, list):
            raise StoreError(f"Exemplar store {self.path}: 'exemplars' must be a list")
        try:
            exemplars = [Exemplar.model_validate(record) for record in records]
        except PydanticValidationError as exc:
            raise StoreError(
                f"Exemplar store {self.path} contains a malformed exemplar",
                details=format_validation_errors(exc),
            ) from exc

        try:
            revision = int(data.get("revision", 0))
        except (TypeError, ValueError) as exc:
            raise StoreError(f"Exemplar store {self.path}: invalid revision") from exc
        return exemplars, revision

    def _write_file(self, exemplars: list[Exemplar], expected_revision: int) -> int:
        current = self._read_file()
        if current is not None:
            disk_revision = self._disk_revision(current)
            if disk_revision != expected_revision:
                raise StoreConflictError(
                    f"Exemplar store {self.path} changed on disk "
                    f"(revision {disk_revision}, expected {expected_revision})",
                    details={"diskRevision": disk_revision, "expectedRevision": expected_revision},
                )

        new_revision = expected_revision + 1
        data = {
            "version": FORMAT_VERSION,
            "revision": new_revision,
            "savedAt": datetime.now(timezone.utc).isoformat(),
            "exemplarCount": len(exemplars),
            "moveTypeCounts": count_by(e.move_type for e in exemplars),
            "exemplars": [e.to_record() for e in exemplars],
        }

        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as exc:
            raise StoreError(f"Cannot write exemplar store {self.path}: {exc}") from exc
        return new_revision

    @staticmethod
    def _disk_revision(data: dict[str, Any]) -> int:
        try:
            return int(data.get("revision", 0))
        except (TypeError, ValueError):
            return -1

    # ------------------------------------------------------------------
    # Lock-held helpers
    # ------------------------------------------------------------------

    async def _load_unlocked(self) -> None:
        data = await asyncio.to_thread(self._read_file)
        self._exemplars, self._revision = self._parse(data)
        self._loaded = True
        logger.info("Loaded %d exemplars from %s (revision %d)", len(self._exemplars), self.path, self._revision)

    async def _ensure_loaded_unlocked(self) -> None:
        if not self._loaded:
            await self._load_unlocked()

    async def _save_unlocked(self) -> None:
        snapshot = list(self._exemplars)
        try:
            self._revision = await asyncio.to_thread(self._write_file, snapshot, self._revision)
        except StoreConflictError:
            logger.warning("Refusing to overwrite %s: modified by another writer", self.path)
            raise
        logger.info("Saved %d exemplars to %s (revision %d)", len(snapshot), self.path, self._revision)

    async def _ensure_embeddings_unlocked(self) -> None:
        missing = [e for e in self._exemplars if e.embedding is None]
        if not missing:
            return
        vectors = await self.embeddings.encode([e.text for e in missing], model=self.model_id, normalize=True)
        for exemplar, vector in zip(missing, vectors, strict=True):
            exemplar.embedding = vector
            exemplar.embedding_model = self.model_id
        logger.info("Computed %d missing exemplar embeddings for %s", len(missing), self.path)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def load(self) -> list[Exemplar]:
        """Read the collection from disk. A missing file loads as empty.

        Raises:
            StoreError: The file is unreadable or malformed.
        """
        async with self._lock:
            await self._load_unlocked()
            return list(self._exemplars)

    async def refresh(self) -> bool:
        """Reload only if the file's revision differs from the one in memory.

        Keeps embeddings computed in memory since the last save when nothing
        changed on disk. Returns True when a reload happened.
        """
        async with self._lock:
            if not self._loaded:
                await self._load_unlocked()
                return True
            data = await asyncio.to_thread(self._read_file)
            disk_revision = self._disk_revision(data) if data is not None else 0
            if disk_revision == self._revision:
                return False
            self._exemplars, self._revision = self._parse(data)
            logger.info("Reloaded %s at revision %d", self.path, self._revision)
            return True

    async def save(self) -> None:
        """Persist the in-memory collection.

        Raises:
            StoreConflictError: The file was rewritten by another writer.
            StoreError: The file could not be written.
        """
        async with self._lock:
            await self._save_unlocked()

    async def add(self, fields: ExemplarFields | dict[str, Any]) -> Exemplar:
        """Embed, append and immediately persist a new exemplar.

        Raises:
            ValidationError: *fields* is missing text or labels.
            EmbeddingError: The embedding could not be computed; nothing is stored.
            StoreError: The collection could not be written; nothing is stored.
        """
        return (await self.add_many([fields]))[0]

    async def add_many(self, fields_list: Sequence[ExemplarFields | dict[str, Any]]) -> list[Exemplar]:
        """Add several exemplars with a single embedding call and a single save."""
        validated = [_coerce_fields(f) for f in fields_list]
        if not validated:
            return []

        async with self._lock:
            await self._ensure_loaded_unlocked()
            vectors = await self.embeddings.encode([f.text for f in validated], model=self.model_id, normalize=True)

            today = date.today().isoformat()
            added = [
                Exemplar(
                    **fields.model_dump(),
                    id=str(uuid4()),
                    annotated_date=today,
                    embedding=vector,
                    embedding_model=self.model_id,
                )
                for fields, vector in zip(validated, vectors, strict=True)
            ]
            self._exemplars.extend(added)
            try:
                await self._save_unlocked()
            except StoreError:
                del self._exemplars[-len(added) :]
                raise

        logger.info("Added %d exemplar(s) to %s", len(added), self.path)
        return added

    async def remove(self, exemplar_id: str) -> bool:
        """Delete an exemplar by id and persist.

        Returns False, without touching the file, when the id is not present.
        """
        async with self._lock:
            await self._ensure_loaded_unlocked()
            position = next((i for i, e in enumerate(self._exemplars) if e.id == exemplar_id), None)
            if position is None:
                logger.info("Exemplar %s not found in %s", exemplar_id, self.path)
                return False

            removed = self._exemplars.pop(position)
            try:
                await self._save_unlocked()
            except StoreError:
                self._exemplars.insert(position, removed)
                raise
        return True

    async def get(self, exemplar_id: str) -> Exemplar | None:
        async with self._lock:
            await self._ensure_loaded_unlocked()
            return next((e for e in self._exemplars if e.id == exemplar_id), None)

    async def list_exemplars(self, move_type: str | None = None) -> list[Exemplar]:
        async with self._lock:
            await self._ensure_loaded_unlocked()
            if move_type:
                return [e for e in self._exemplars if e.move_type == move_type]
            return list(self._exemplars)

    async def stats(self) -> StoreStats:
        async with self._lock:
            await self._ensure_loaded_unlocked()
            exemplars = list(self._exemplars)
        return StoreStats(
            total_exemplars=len(exemplars),
            move_type_counts=count_by(e.move_type for e in exemplars),
            category_counts=count_by(e.move_category for e in exemplars),
            confidence_counts=count_by(e.confidence.value for e in exemplars),
            embedded_count=sum(1 for e in exemplars if e.embedding is not None),
        )

    async def search(
        self,
        text: str,
        top_k: int = 5,
        threshold: float = 0.0,
        move_type: str | None = None,
    ) -> list[Match]:
        """Return up to *top_k* exemplars with similarity >= *threshold*, best first."""
        return (await self.search_many([text], top_k=top_k, threshold=threshold, move_type=move_type))[0]

    async def search_many(
        self,
        texts: Sequence[str],
        top_k: int = 5,
        threshold: float = 0.0,
        move_type: str | None = None,
    ) -> list[list[Match]]:
        """Run :meth:`search` for several query texts with one query-encoding call.

        Exemplars still lacking a vector are embedded first (kept in memory
        until the next save). Exemplars whose vector dimension does not match
        the active model are left out of the comparison.
        """
        if top_k < 1:
            raise ValidationError("Invalid search", details=["top_k: must be >= 1"])
        if not texts:
            return []

        async with self._lock:
            await self._ensure_loaded_unlocked()
            await self._ensure_embeddings_unlocked()
            candidates = [
                e
                for e in self._exemplars
                if e.embedding is not None and (not move_type or e.move_type == move_type)
            ]

        if not candidates:
            return [[] for _ in texts]

        query_vectors = await self.embeddings.encode(list(texts), model=self.model_id, normalize=True)
        dimensions = len(query_vectors[0])
        comparable = [e for e in candidates if len(e.embedding or ()) == dimensions]
        if len(comparable) < len(candidates):
            logger.warning(
                "Skipping %d exemplars in %s whose vectors do not match %s (%d dims)",
                len(candidates) - len(comparable),
                self.path,
                self.model_id,
                dimensions,
            )
        if not comparable:
            return [[] for _ in texts]

        scores = similarity_matrix(query_vectors, [e.embedding or [] for e in comparable])
        results: list[list[Match]] = []
        for row in scores:
            matches = [Match(exemplar=e, similarity=float(s)) for e, s in zip(comparable, row) if s >= threshold]
            matches.sort(key=lambda m: m.similarity, reverse=True)
            results.append(matches[:top_k])
        return results

    async def move_type_counts(self) -> dict[str, int]:
        async with self._lock:
            await self._ensure_loaded_unlocked()
            return count_by(e.move_type for e in self._exemplars)


class StoreRegistry:
    """Hands out one shared :class:`ExemplarStore` per resolved file path.

    Every caller touching the same path goes through the same handle, so
    mutations on that path are serialised by the handle's lock.
    """

    def __init__(self, embeddings: EmbeddingProvider) -> None:
        self.embeddings = embeddings
        self._stores: dict[Path, ExemplarStore] = {}
        self._lock = asyncio.Lock()

    async def open(self, path: str | Path) -> ExemplarStore:
        """Return the handle for *path*, loading it or picking up external changes."""
        key = Path(path).expanduser().resolve()
        async with self._lock:
            store = self._stores.get(key)
            if store is None:
                store = ExemplarStore(key, self.embeddings)
                self._stores[key] = store
        await store.refresh()
        return store

    def open_paths(self) -> list[Path]:
        return list(self._stores)
