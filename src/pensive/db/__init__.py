"""Pensive storage layer."""

from pensive.db.connection import Database
from pensive.db.persistence import FileBackend, MemoryBackend, RestoreError
from pensive.db.schema import CURRENT_VERSION, INDEXES, TABLES
from pensive.db.store import IndexedStore, UnknownTableError

__all__ = [
    "CURRENT_VERSION",
    "Database",
    "FileBackend",
    "INDEXES",
    "IndexedStore",
    "MemoryBackend",
    "RestoreError",
    "TABLES",
    "UnknownTableError",
]
