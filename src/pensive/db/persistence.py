"""Persistence adapter: key-value backends and the versioned JSON blob format.

The whole store is serialized to a single blob::

    {"version": 1, "timestamp": "2026-01-01T00:00:00+00:00",
     "tables": {"content": [...], "analysis": [...], ...}}

Backends only move opaque strings (``get(key)`` / ``set(key, blob)``); they
know nothing about tables or records.
"""

from __future__ import annotations

import json
import re
import threading
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, Protocol

from pensive.db.schema import CURRENT_VERSION, REQUIRED_FIELDS

_KEY_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


class PersistenceError(RuntimeError):
    """Raised when the store cannot be written to its durable location."""


class RestoreError(ValueError):
    """Raised when a blob cannot be parsed or validated. Nothing was changed."""


class StorageBackend(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, blob: str) -> None: ...

    def delete(self, key: str) -> bool: ...


class MemoryBackend:
    """Process-local backend. Useful for tests and throwaway stores."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, blob: str) -> None:
        self._data[key] = blob

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None


class FileBackend:
    """One ``<key>.json`` file per key inside *directory*.

    Writes go to a temp file first and are moved into place with
    ``Path.replace`` so a crash mid-write never leaves a truncated blob.
    """

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)
        self._lock = threading.Lock()

    def path_for(self, key: str) -> Path:
        if not _KEY_RE.match(key):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.directory / f"{key}.json"

    def get(self, key: str) -> str | None:
        path = self.path_for(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, blob: str) -> None:
        path = self.path_for(key)
        with self._lock:
            self.directory.mkdir(parents=True, exist_ok=True)
            temp = path.with_suffix(".json.tmp")
            temp.write_text(blob, encoding="utf-8")
            temp.replace(path)

    def delete(self, key: str) -> bool:
        path = self.path_for(key)
        if not path.exists():
            return False
        path.unlink()
        return True


# ---------------------------------------------------------------------------
# Blob format
# ---------------------------------------------------------------------------


def serialize(
    tables: Mapping[str, Mapping[str, dict[str, Any]]], timestamp: str
) -> dict[str, Any]:
    """Build the blob dict for *tables* (table name → id → record)."""
    return {
        "version": CURRENT_VERSION,
        "timestamp": timestamp,
        "tables": {name: list(records.values()) for name, records in tables.items()},
    }


def dumps(blob: dict[str, Any], *, pretty: bool = False) -> str:
    if pretty:
        return json.dumps(blob, indent=2, ensure_ascii=False)
    return json.dumps(blob, separators=(",", ":"), ensure_ascii=False)


def deserialize(raw: str, known_tables: Iterable[str]) -> dict[str, dict[str, dict[str, Any]]]:
    """Parse and validate *raw* into table name → id → record.

    Tables named in the blob but not in *known_tables* are ignored; known
    tables missing from the blob come back empty. Records must carry the
    fields listed for their table in ``REQUIRED_FIELDS``.

    Raises:
        RestoreError: If the blob is not valid JSON, has an unsupported
            version, or contains malformed tables or records.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as exc:
        raise RestoreError(f"Blob is not valid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise RestoreError("Blob must be a JSON object")

    version = data.get("version")
    if not isinstance(version, int) or isinstance(version, bool):
        raise RestoreError(f"Blob has no integer version stamp (got {version!r})")
    if version > CURRENT_VERSION:
        raise RestoreError(
            f"Blob version {version} is newer than supported version {CURRENT_VERSION}"
        )

    raw_tables = data.get("tables", {})
    if not isinstance(raw_tables, dict):
        raise RestoreError("Blob 'tables' must be an object")

    result: dict[str, dict[str, dict[str, Any]]] = {}
    for name in known_tables:
        records = raw_tables.get(name, [])
        if not isinstance(records, list):
            raise RestoreError(f"Table '{name}' must be a list of records")
        table: dict[str, dict[str, Any]] = {}
        for pos, rec in enumerate(records):
            if not isinstance(rec, dict):
                raise RestoreError(f"Table '{name}' record #{pos} is not an object")
            rec_id = rec.get("id")
            if not isinstance(rec_id, str) or not rec_id:
                raise RestoreError(f"Table '{name}' record #{pos} has no string id")
            _check_fields(name, pos, rec)
            table[rec_id] = rec
        result[name] = table
    return result


def _check_fields(table: str, pos: int, rec: dict[str, Any]) -> None:
    for field, types in REQUIRED_FIELDS.get(table, {}).items():
        value = rec.get(field)
        if isinstance(value, bool) or not isinstance(value, types):
            raise RestoreError(
                f"Table '{table}' record #{pos} ({rec['id']}) has invalid '{field}': {value!r}"
            )
