"""Shared pytest fixtures."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from pensive.db.persistence import MemoryBackend
from pensive.db.repository import ContentRepository
from pensive.db.store import IndexedStore
from pensive.graph.builder import ConceptBuilder
from pensive.graph.query import GraphQueryEngine

FIXED_NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock; each call returns the current value."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def store(backend, clock) -> IndexedStore:
    """Fresh store persisted to an in-memory backend, with a fixed clock."""
    return IndexedStore(backend=backend, clock=clock)


@pytest.fixture
def builder(store) -> ConceptBuilder:
    return ConceptBuilder(store)


@pytest.fixture
def repo(store, builder) -> ContentRepository:
    return ContentRepository(store, builder)


@pytest.fixture
def engine(store) -> GraphQueryEngine:
    return GraphQueryEngine(store)


@pytest.fixture
def isolated_config(tmp_path, monkeypatch):
    """Point config lookup away from the real home directory and environment."""
    monkeypatch.setattr("pensive.config._GLOBAL_CONFIG_PATH", tmp_path / "home" / "config.yaml")
    monkeypatch.delenv("PENSIVE_STORE_PATH", raising=False)
    monkeypatch.delenv("PENSIVE_STORE_KEY", raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path
