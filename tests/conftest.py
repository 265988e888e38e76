"""Shared fixtures: a hashing-backed context and seeded collection files."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from rhetoric.context import AppContext
from tests.fakes import make_context, starter_exemplars


@pytest.fixture
def context() -> AppContext:
    return make_context()


@pytest.fixture
def store_path(tmp_path: Path) -> Path:
    return tmp_path / "exemplars.json"


@pytest.fixture
def seeded_store_path(tmp_path: Path) -> Path:
    """A collection file holding three concession and three contrast exemplars."""
    path = tmp_path / "seeded.json"

    async def seed() -> None:
        store = await make_context().stores.open(path)
        await store.add_many(starter_exemplars())

    asyncio.run(seed())
    return path
