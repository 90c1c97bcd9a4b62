"""Opening a persisted store from a directory on disk."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from pensive.db.persistence import FileBackend
from pensive.db.store import DEFAULT_KEY, IndexedStore, utc_now


class Database:
    """Per-project store persisted as ``<directory>/<key>.json``."""

    def __init__(
        self,
        directory: Path | str,
        key: str = DEFAULT_KEY,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Store the location. Call open() to load the store.

        Args:
            directory: Directory holding the blob (created on first write).
            key: Storage key; the blob file is ``<key>.json``.
            clock: Injectable time source passed to the store.
        """
        self.directory = Path(directory)
        self.key = key
        self._clock = clock
        self._store: IndexedStore | None = None

    @property
    def path(self) -> Path:
        return FileBackend(self.directory).path_for(self.key)

    def exists(self) -> bool:
        return self.path.exists()

    def open(self) -> IndexedStore:
        """Load the blob (or start empty) and return the store."""
        return IndexedStore(backend=FileBackend(self.directory), key=self.key, clock=self._clock)

    def __enter__(self) -> IndexedStore:
        """Open the store (context manager support)."""
        self._store = self.open()
        return self._store

    def __exit__(self, *args: object) -> None:
        """Flush any outstanding state when leaving the context manager."""
        if self._store is not None:
            self._store.flush()
            self._store = None
