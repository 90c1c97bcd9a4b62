"""In-process, table-oriented record store with secondary indexes.

Records are JSON-shaped dicts keyed by ``id``. Every table may register
secondary indexes on top-level fields; an index maps a *typed* key
``(type name, value)`` to the insertion-ordered set of ids holding that value,
so ``1``, ``1.0``, ``True`` and ``"1"`` never collide.

Every mutation updates the affected indexes before returning and then writes
the whole store through the configured backend (see ``pensive.db.persistence``).
Use ``batch()`` to group a multi-step mutation under one lock and one write.

Returned records are shallow copies: reassigning their fields never touches
the store, but nested lists and dicts are shared and must not be mutated.
"""

from __future__ import annotations

import copy
import json
import logging
import threading
import uuid
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

from pensive.db.persistence import (
    RestoreError,
    StorageBackend,
    deserialize,
    dumps,
    serialize,
)
from pensive.db.schema import INDEXES, TABLES

logger = logging.getLogger(__name__)

Record = dict[str, Any]
IndexKey = tuple[str, Any]

DEFAULT_KEY = "pensive-database"

_COLLECTIONS = (list, tuple, set, frozenset)


class UnknownTableError(KeyError):
    """Raised when an operation names a table the store was not built with."""


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def index_key(value: Any) -> IndexKey:
    """Typed, hashable key for *value* as used by indexes and ``where`` matching."""
    if isinstance(value, (list, tuple, dict, set, frozenset)):
        return type(value).__name__, json.dumps(value, sort_keys=True, default=str)
    return type(value).__name__, value


def _matches(record: Record, where: Mapping[str, Any]) -> bool:
    for field, expected in where.items():
        actual = index_key(record.get(field))
        if isinstance(expected, _COLLECTIONS):
            if actual not in {index_key(v) for v in expected}:
                return False
        elif actual != index_key(expected):
            return False
    return True


def _sorted(records: list[Record], field: str, descending: bool) -> list[Record]:
    present = [r for r in records if r.get(field) is not None]
    missing = [r for r in records if r.get(field) is None]
    try:
        present.sort(key=lambda r: r[field], reverse=descending)
    except TypeError:
        # Mixed value types: fall back to a deterministic textual order.
        present.sort(key=lambda r: (type(r[field]).__name__, str(r[field])), reverse=descending)
    return present + missing


class IndexedStore:
    """Named tables of records with maintained secondary indexes.

    Args:
        tables: Table names to create.
        indexes: Table name → fields to index.
        backend: Durable key-value location. ``None`` keeps the store in
            memory only.
        key: Storage key of this store inside *backend*.
        clock: Returns the current aware datetime (injectable for tests).
    """

    def __init__(
        self,
        tables: tuple[str, ...] = TABLES,
        indexes: Mapping[str, tuple[str, ...]] = INDEXES,
        *,
        backend: StorageBackend | None = None,
        key: str = DEFAULT_KEY,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._lock = threading.RLock()
        self._tables: dict[str, dict[str, Record]] = {name: {} for name in tables}
        self._indexes: dict[str, dict[str, dict[IndexKey, dict[str, None]]]] = {
            name: {} for name in tables
        }
        self._backend = backend
        self._key = key
        self._clock = clock
        self._batch_depth = 0
        self._dirty = False
        self.last_persist_error: str | None = None

        self._load()
        for table, fields in indexes.items():
            for field in fields:
                self.create_index(table, field)

    # ------------------------------------------------------------------
    # Properties / helpers
    # ------------------------------------------------------------------

    @property
    def key(self) -> str:
        return self._key

    @property
    def table_names(self) -> tuple[str, ...]:
        return tuple(self._tables)

    def now(self) -> datetime:
        return self._clock()

    def _timestamp(self) -> str:
        return self._clock().isoformat()

    def _table(self, table: str) -> dict[str, Record]:
        try:
            return self._tables[table]
        except KeyError:
            raise UnknownTableError(table) from None

    # ------------------------------------------------------------------
    # Indexes
    # ------------------------------------------------------------------

    def create_index(self, table: str, field: str) -> None:
        """Register an index on *field* and build it from current rows (idempotent)."""
        with self._lock:
            rows = self._table(table)
            if field in self._indexes[table]:
                return
            field_index: dict[IndexKey, dict[str, None]] = {}
            for rec_id, rec in rows.items():
                field_index.setdefault(index_key(rec.get(field)), {})[rec_id] = None
            self._indexes[table][field] = field_index

    def has_index(self, table: str, field: str) -> bool:
        with self._lock:
            self._table(table)
            return field in self._indexes[table]

    def rebuild_indexes(self) -> None:
        """Drop and rebuild every registered index from table contents."""
        with self._lock:
            for table, fields in self._indexes.items():
                registered = list(fields)
                fields.clear()
                for field in registered:
                    self.create_index(table, field)

    def _index_record(self, table: str, rec: Record) -> None:
        for field, field_index in self._indexes[table].items():
            field_index.setdefault(index_key(rec.get(field)), {})[rec["id"]] = None

    def _unindex_record(self, table: str, rec: Record) -> None:
        for field, field_index in self._indexes[table].items():
            self._discard(field_index, index_key(rec.get(field)), rec["id"])

    @staticmethod
    def _discard(field_index: dict[IndexKey, dict[str, None]], key: IndexKey, rec_id: str) -> None:
        ids = field_index.get(key)
        if ids is None:
            return
        ids.pop(rec_id, None)
        if not ids:
            del field_index[key]

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def insert(self, table: str, record: Mapping[str, Any]) -> str:
        """Store *record* and return its id (a uuid4 is assigned if absent)."""
        with self._lock:
            rows = self._table(table)
            now = self._timestamp()
            rec = copy.deepcopy(dict(record))
            rec_id = str(rec.get("id") or uuid.uuid4().hex)
            rec["id"] = rec_id
            rec["created_at"] = rec.get("created_at") or now
            rec["updated_at"] = now

            previous = rows.get(rec_id)
            if previous is not None:
                self._unindex_record(table, previous)
            rows[rec_id] = rec
            self._index_record(table, rec)
            self._persist()
            return rec_id

    def update(self, table: str, record_id: str, changes: Mapping[str, Any]) -> bool:
        """Merge *changes* into a record. Returns False if *record_id* is absent."""
        with self._lock:
            rows = self._table(table)
            existing = rows.get(record_id)
            if existing is None:
                return False

            merged = copy.deepcopy(dict(changes))
            merged.pop("id", None)
            merged.pop("created_at", None)
            updated = {
                **existing,
                **merged,
                "id": record_id,
                "created_at": existing.get("created_at"),
                "updated_at": self._timestamp(),
            }

            for field, field_index in self._indexes[table].items():
                old_key = index_key(existing.get(field))
                new_key = index_key(updated.get(field))
                if old_key != new_key:
                    self._discard(field_index, old_key, record_id)
                    field_index.setdefault(new_key, {})[record_id] = None

            rows[record_id] = updated
            self._persist()
            return True

    def delete(self, table: str, record_id: str) -> bool:
        """Remove a record and its index entries. Does not cascade."""
        with self._lock:
            rows = self._table(table)
            existing = rows.pop(record_id, None)
            if existing is None:
                return False
            self._unindex_record(table, existing)
            self._persist()
            return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_by_id(self, table: str, record_id: str) -> Record | None:
        with self._lock:
            rec = self._table(table).get(record_id)
            return dict(rec) if rec is not None else None

    def find_all(
        self,
        table: str,
        where: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Record]:
        """Filter, sort, then paginate (offset first, then limit).

        A ``where`` value that is a list, tuple or set means membership;
        anything else is an exact, type-sensitive match. Records missing the
        ``order_by`` field sort last in either direction.
        """
        if offset < 0 or (limit is not None and limit < 0):
            raise ValueError("limit and offset must be non-negative")

        with self._lock:
            results = list(self._table(table).values())
            if where:
                results = [r for r in results if _matches(r, where)]
            if order_by:
                results = _sorted(results, order_by, descending)
            if offset:
                results = results[offset:]
            if limit is not None:
                results = results[:limit]
            return [dict(r) for r in results]

    def find_by_index(self, table: str, field: str, value: Any) -> list[Record]:
        """Records whose *field* equals *value*, via the index when one exists.

        Falls back to a full scan for unindexed fields; the result set is the
        same either way. A collection *value* means membership, as in
        ``find_all``.
        """
        with self._lock:
            rows = self._table(table)
            field_index = self._indexes[table].get(field)
            if field_index is None:
                return self.find_all(table, where={field: value})

            values = value if isinstance(value, _COLLECTIONS) else (value,)
            ids: dict[str, None] = {}
            for v in values:
                ids.update(field_index.get(index_key(v), {}))
            return [dict(rows[rec_id]) for rec_id in ids]

    def search(self, table: str, term: str, fields: list[str] | tuple[str, ...]) -> list[Record]:
        """Case-insensitive substring match over string or list-of-string fields."""
        needle = term.lower()
        matches: list[Record] = []
        with self._lock:
            for rec in self._table(table).values():
                for field in fields:
                    value = rec.get(field)
                    if isinstance(value, str) and needle in value.lower():
                        matches.append(dict(rec))
                        break
                    if isinstance(value, list) and any(
                        isinstance(item, str) and needle in item.lower() for item in value
                    ):
                        matches.append(dict(rec))
                        break
        return matches

    def join(
        self,
        left: str,
        right: str,
        left_field: str,
        right_field: str,
        **query: Any,
    ) -> list[Record]:
        """Left outer join.

        Each left record (selected with ``find_all(left, **query)``) gains a
        ``joined`` key holding the first right record whose *right_field*
        equals the left record's *left_field*, or ``None``.
        """
        with self._lock:
            first_match: dict[IndexKey, Record] = {}
            for rec in self._table(right).values():
                first_match.setdefault(index_key(rec.get(right_field)), rec)

            joined: list[Record] = []
            for rec in self.find_all(left, **query):
                match = first_match.get(index_key(rec.get(left_field)))
                rec["joined"] = dict(match) if match is not None else None
                joined.append(rec)
            return joined

    def count(self, table: str, where: Mapping[str, Any] | None = None) -> int:
        with self._lock:
            if not where:
                return len(self._table(table))
            return len(self.find_all(table, where=where))

    def group_by(self, table: str, field: str) -> dict[Any, list[Record]]:
        """Group records by the value of *field* (unhashable values by their JSON text)."""
        groups: dict[Any, list[Record]] = {}
        for rec in self.find_all(table):
            value = rec.get(field)
            group = index_key(value)[1] if isinstance(value, (list, dict)) else value
            groups.setdefault(group, []).append(rec)
        return groups

    def table_stats(self) -> dict[str, int]:
        with self._lock:
            return {name: len(rows) for name, rows in self._tables.items()}

    def total_records(self) -> int:
        with self._lock:
            return sum(len(rows) for rows in self._tables.values())

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @contextmanager
    def batch(self) -> Iterator[IndexedStore]:
        """Hold the store lock and defer persistence to one write at the end.

        Nested batches persist once, when the outermost batch exits.
        """
        with self._lock:
            self._batch_depth += 1
            try:
                yield self
            finally:
                self._batch_depth -= 1
                if self._batch_depth == 0 and self._dirty:
                    self._dirty = False
                    self._write()

    def flush(self) -> bool:
        """Write the store now. Returns False if the write failed (see ``last_persist_error``)."""
        with self._lock:
            return self._write()

    def _persist(self) -> None:
        if self._batch_depth:
            self._dirty = True
            return
        self._write()

    def _write(self) -> bool:
        if self._backend is None:
            return True
        try:
            blob = dumps(serialize(self._tables, self._timestamp()))
            self._backend.set(self._key, blob)
        except (OSError, TypeError, ValueError) as exc:
            self.last_persist_error = str(exc)
            logger.warning("Could not persist store %r: %s", self._key, exc)
            return False
        self.last_persist_error = None
        return True

    def _load(self) -> None:
        if self._backend is None:
            return
        try:
            raw = self._backend.get(self._key)
        except (OSError, UnicodeDecodeError) as exc:
            logger.error("Could not read store %r, starting empty: %s", self._key, exc)
            return
        if raw is None:
            return
        try:
            tables = deserialize(raw, self._tables)
        except RestoreError as exc:
            logger.error("Ignoring corrupt store blob %r, starting empty: %s", self._key, exc)
            return
        self._tables.update(tables)
        logger.info("Loaded store %r with %d records", self._key, self.total_records())

    def backup(self) -> str:
        """Pretty-printed blob of the whole store (same format as the durable copy)."""
        with self._lock:
            return dumps(serialize(self._tables, self._timestamp()), pretty=True)

    def restore(self, raw: str) -> dict[str, int]:
        """Replace every table with the contents of *raw* and rebuild indexes.

        The blob is parsed and validated before anything changes.

        Returns:
            Record count per table after the restore.

        Raises:
            RestoreError: If *raw* is malformed; the store is left untouched.
        """
        tables = deserialize(raw, self._tables)
        with self.batch():
            for name in self._tables:
                self._tables[name] = tables.get(name, {})
            self.rebuild_indexes()
            self._dirty = True
        stats = self.table_stats()
        logger.info("Restored store %r: %s", self._key, stats)
        return stats

    def clear(self) -> bool:
        """Empty every table and remove the durable blob.

        Returns:
            True if a durable blob existed and was removed.
        """
        with self._lock:
            for rows in self._tables.values():
                rows.clear()
            self.rebuild_indexes()
            if self._backend is None:
                return False
            try:
                return self._backend.delete(self._key)
            except OSError as exc:
                self.last_persist_error = str(exc)
                logger.warning("Could not remove store %r: %s", self._key, exc)
                return False
