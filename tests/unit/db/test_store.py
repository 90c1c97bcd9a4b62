"""Tests for the indexed record store."""

from __future__ import annotations

import threading

import pytest

from pensive.db.persistence import MemoryBackend, RestoreError
from pensive.db.store import IndexedStore, UnknownTableError, index_key
from pensive.graph.query import GraphQueryEngine


@pytest.fixture
def small(clock) -> IndexedStore:
    return IndexedStore(
        tables=("items", "tags"),
        indexes={"items": ("kind", "rank"), "tags": ("item_id",)},
        backend=MemoryBackend(),
        clock=clock,
    )


# ------------------------------------------------------------------
# Insert / update / delete
# ------------------------------------------------------------------


def test_insert_assigns_id_and_timestamps(small, clock):
    rec_id = small.insert("items", {"name": "a"})
    rec = small.find_by_id("items", rec_id)
    assert rec is not None
    assert len(rec_id) == 32
    assert rec["created_at"] == clock.now.isoformat()
    assert rec["updated_at"] == clock.now.isoformat()


def test_insert_keeps_explicit_id_and_created_at(small):
    small.insert("items", {"id": "fixed", "created_at": "2020-01-01T00:00:00+00:00"})
    rec = small.find_by_id("items", "fixed")
    assert rec["created_at"] == "2020-01-01T00:00:00+00:00"


def test_insert_stores_a_copy(small):
    record = {"name": "a", "tags": ["x"]}
    rec_id = small.insert("items", record)
    record["name"] = "changed"
    record["tags"].append("y")
    assert small.find_by_id("items", rec_id)["name"] == "a"
    assert small.find_by_id("items", rec_id)["tags"] == ["x"]


def test_unknown_table_raises(small):
    with pytest.raises(UnknownTableError):
        small.insert("nope", {})
    with pytest.raises(UnknownTableError):
        small.find_all("nope")


def test_update_merges_and_preserves_identity(small, clock):
    rec_id = small.insert("items", {"name": "a", "kind": "x"})
    created = small.find_by_id("items", rec_id)["created_at"]
    clock.advance(minutes=5)

    assert small.update("items", rec_id, {"name": "b", "id": "other", "created_at": "bogus"})
    rec = small.find_by_id("items", rec_id)
    assert rec["id"] == rec_id
    assert rec["name"] == "b"
    assert rec["kind"] == "x"
    assert rec["created_at"] == created
    assert rec["updated_at"] == clock.now.isoformat()


def test_update_missing_returns_false(small):
    assert small.update("items", "missing", {"name": "x"}) is False


def test_update_moves_index_entry(small):
    rec_id = small.insert("items", {"kind": "x"})
    small.update("items", rec_id, {"kind": "y"})
    assert small.find_by_index("items", "kind", "x") == []
    assert [r["id"] for r in small.find_by_index("items", "kind", "y")] == [rec_id]


def test_delete(small):
    rec_id = small.insert("items", {"kind": "x"})
    assert small.delete("items", rec_id) is True
    assert small.delete("items", rec_id) is False
    assert small.find_by_id("items", rec_id) is None
    assert small.find_by_index("items", "kind", "x") == []


# ------------------------------------------------------------------
# Index semantics
# ------------------------------------------------------------------


def test_index_keys_are_typed():
    assert index_key(1) != index_key("1")
    assert index_key(1) != index_key(True)
    assert index_key(None) == ("NoneType", None)


def test_find_by_index_distinguishes_types(small):
    small.insert("items", {"id": "int", "rank": 1})
    small.insert("items", {"id": "str", "rank": "1"})
    small.insert("items", {"id": "bool", "rank": True})

    assert [r["id"] for r in small.find_by_index("items", "rank", 1)] == ["int"]
    assert [r["id"] for r in small.find_by_index("items", "rank", "1")] == ["str"]
    assert [r["id"] for r in small.find_by_index("items", "rank", True)] == ["bool"]


def test_find_by_index_matches_find_all(small):
    ids = [
        small.insert("items", {"kind": ["a", "b", "c"][i % 3], "rank": i % 4}) for i in range(20)
    ]
    for rec_id in ids[::3]:
        small.update("items", rec_id, {"kind": "z", "rank": "1"})
    for rec_id in ids[1::4]:
        small.delete("items", rec_id)
    small.insert("items", {"id": ids[1], "kind": "a", "rank": 1.0})
    small.insert("items", {"id": "extra", "rank": True})
    small.update("items", ids[2], {"kind": None})

    values = {
        "kind": ("a", "b", "c", "z", None, "missing"),
        "rank": (0, 1, 2, 3, "1", 1.0, True, None),
    }
    for field, candidates in values.items():
        for value in candidates:
            via_index = {r["id"] for r in small.find_by_index("items", field, value)}
            via_scan = {r["id"] for r in small.find_all("items", where={field: value})}
            assert via_index == via_scan, (field, value)


def test_find_by_index_without_index_scans(small):
    small.insert("items", {"id": "1", "colour": "red"})
    small.insert("items", {"id": "2", "colour": "blue"})
    assert not small.has_index("items", "colour")
    assert [r["id"] for r in small.find_by_index("items", "colour", "red")] == ["1"]


def test_missing_field_is_indexed_as_none(small):
    small.insert("items", {"id": "1"})
    assert [r["id"] for r in small.find_by_index("items", "kind", None)] == ["1"]


def test_create_index_builds_from_existing_rows(small):
    small.insert("items", {"id": "1", "colour": "red"})
    small.create_index("items", "colour")
    assert small.has_index("items", "colour")
    assert [r["id"] for r in small.find_by_index("items", "colour", "red")] == ["1"]


def test_rebuild_indexes(small):
    small.insert("items", {"id": "1", "kind": "x"})
    small.rebuild_indexes()
    assert [r["id"] for r in small.find_by_index("items", "kind", "x")] == ["1"]


def test_mutating_returned_record_does_not_touch_store(small):
    rec_id = small.insert("items", {"kind": "x"})
    rec = small.find_by_id("items", rec_id)
    rec["kind"] = "y"
    assert small.find_by_id("items", rec_id)["kind"] == "x"
    assert small.find_by_index("items", "kind", "y") == []


# ------------------------------------------------------------------
# Queries
# ------------------------------------------------------------------


def test_find_all_membership_filter(small):
    small.insert("items", {"id": "1", "kind": "a"})
    small.insert("items", {"id": "2", "kind": "b"})
    small.insert("items", {"id": "3", "kind": "c"})
    found = small.find_all("items", where={"kind": ["a", "c"]})
    assert [r["id"] for r in found] == ["1", "3"]


def test_find_all_order_missing_last(small):
    small.insert("items", {"id": "none"})
    small.insert("items", {"id": "b", "rank": 2})
    small.insert("items", {"id": "a", "rank": 1})

    asc = [r["id"] for r in small.find_all("items", order_by="rank")]
    desc = [r["id"] for r in small.find_all("items", order_by="rank", descending=True)]
    assert asc == ["a", "b", "none"]
    assert desc == ["b", "a", "none"]


def test_find_all_pagination_offset_then_limit(small):
    for i in range(10):
        small.insert("items", {"id": f"r{i}", "rank": i})
    page = small.find_all("items", order_by="rank", offset=3, limit=2)
    assert [r["id"] for r in page] == ["r3", "r4"]
    assert small.find_all("items", offset=20) == []
    assert small.find_all("items", limit=0) == []


def test_find_all_negative_pagination_raises(small):
    with pytest.raises(ValueError):
        small.find_all("items", limit=-1)
    with pytest.raises(ValueError):
        small.find_all("items", offset=-1)


def test_search_strings_and_lists(small):
    small.insert("items", {"id": "1", "name": "Rust in Production"})
    small.insert("items", {"id": "2", "name": "Go", "aliases": ["golang", "RUSTLESS"]})
    small.insert("items", {"id": "3", "name": "Python"})
    found = {r["id"] for r in small.search("items", "rust", ["name", "aliases"])}
    assert found == {"1", "2"}


def test_join_left_outer(small):
    small.insert("items", {"id": "i1", "name": "a"})
    small.insert("items", {"id": "i2", "name": "b"})
    small.insert("tags", {"id": "t1", "item_id": "i1", "label": "first"})
    small.insert("tags", {"id": "t2", "item_id": "i1", "label": "second"})

    rows = {r["id"]: r for r in small.join("items", "tags", "id", "item_id")}
    assert rows["i1"]["joined"]["label"] == "first"
    assert rows["i2"]["joined"] is None


def test_count_and_group_by(small):
    small.insert("items", {"kind": "a"})
    small.insert("items", {"kind": "a"})
    small.insert("items", {"kind": "b"})
    assert small.count("items") == 3
    assert small.count("items", where={"kind": "a"}) == 2
    groups = small.group_by("items", "kind")
    assert {k: len(v) for k, v in groups.items()} == {"a": 2, "b": 1}


def test_table_stats_and_total(small):
    small.insert("items", {})
    small.insert("tags", {})
    small.insert("tags", {})
    assert small.table_stats() == {"items": 1, "tags": 2}
    assert small.total_records() == 3


# ------------------------------------------------------------------
# Persistence
# ------------------------------------------------------------------


def test_every_mutation_persists(clock):
    backend = MemoryBackend()
    s = IndexedStore(tables=("items",), indexes={}, backend=backend, clock=clock)
    rec_id = s.insert("items", {"name": "a"})
    assert rec_id in backend.get("pensive-database")

    reopened = IndexedStore(tables=("items",), indexes={}, backend=backend, clock=clock)
    assert reopened.find_by_id("items", rec_id)["name"] == "a"


def test_batch_persists_once(clock):
    class CountingBackend(MemoryBackend):
        writes = 0

        def set(self, key, blob):
            self.writes += 1
            super().set(key, blob)

    backend = CountingBackend()
    s = IndexedStore(tables=("items",), indexes={}, backend=backend, clock=clock)
    with s.batch():
        for _ in range(5):
            s.insert("items", {})
        with s.batch():
            s.insert("items", {})
    assert backend.writes == 1
    assert s.count("items") == 6


def test_write_failure_is_recorded_not_raised(clock):
    class BrokenBackend(MemoryBackend):
        def set(self, key, blob):
            raise OSError("disk full")

    s = IndexedStore(tables=("items",), indexes={}, backend=BrokenBackend(), clock=clock)
    rec_id = s.insert("items", {"name": "a"})
    assert s.find_by_id("items", rec_id) is not None
    assert "disk full" in s.last_persist_error
    assert s.flush() is False


def test_corrupt_blob_at_startup_starts_empty(clock, caplog):
    backend = MemoryBackend()
    backend.set("pensive-database", "{not json")
    s = IndexedStore(backend=backend, clock=clock)
    assert s.total_records() == 0
    assert "corrupt" in caplog.text.lower()


def test_newer_version_blob_starts_empty(clock):
    backend = MemoryBackend()
    backend.set("pensive-database", '{"version": 999, "tables": {}}')
    s = IndexedStore(backend=backend, clock=clock)
    assert s.total_records() == 0


def test_loaded_blob_is_indexed(clock):
    backend = MemoryBackend()
    first = IndexedStore(backend=backend, clock=clock)
    first.insert("content", {"id": "c1", "source": "rss", "content_hash": "h1"})

    second = IndexedStore(backend=backend, clock=clock)
    assert [r["id"] for r in second.find_by_index("content", "source", "rss")] == ["c1"]


def test_backup_restore_round_trip(store):
    store.insert("content", {"id": "c1", "source": "rss", "content_hash": "h1"})
    blob = store.backup()
    store.insert("content", {"id": "c2", "source": "rss", "content_hash": "h2"})

    stats = store.restore(blob)
    assert stats["content"] == 1
    assert [r["id"] for r in store.find_by_index("content", "source", "rss")] == ["c1"]


MALFORMED_BLOBS = [
    "[]",
    '{"version": 1, "tables": {"content": [{"title": "no id"}]}}',
    '{"version": 1, "tables": {"concepts": [{"id": "k1", "name": "Rust", "frequency": "lots"}]}}',
    '{"version": 1, "tables": {"relationships": [{"id": "r1", "type": "CO_OCCURS"}]}}',
    '{"version": 1, "tables": {"concept_links": [{"id": "l1", "concept_id": "k1"}]}}',
]


@pytest.mark.parametrize("raw", MALFORMED_BLOBS)
def test_restore_malformed_leaves_state(store, engine, raw):
    store.insert("content", {"id": "c1", "content_hash": "h1"})
    store.insert("concepts", {"id": "k0", "name": "Go", "frequency": 1})
    with pytest.raises(RestoreError):
        store.restore(raw)
    assert store.find_by_id("content", "c1") is not None
    assert [n.label for n in engine.get_concept_graph(0, "").nodes] == ["Go"]


@pytest.mark.parametrize("raw", MALFORMED_BLOBS)
def test_malformed_records_at_startup_start_empty(clock, raw):
    backend = MemoryBackend()
    backend.set("pensive-database", raw)
    s = IndexedStore(backend=backend, clock=clock)
    assert s.total_records() == 0
    assert GraphQueryEngine(s).get_concept_graph(0, "").nodes == []


def test_restore_ignores_unknown_tables(store):
    stats = store.restore('{"version": 1, "tables": {"mystery": [{"id": "x"}]}}')
    assert "mystery" not in stats
    assert store.total_records() == 0


def test_clear_removes_blob(store, backend):
    store.insert("content", {"id": "c1"})
    assert store.clear() is True
    assert store.total_records() == 0
    assert backend.get("pensive-database") is None
    assert store.find_by_index("content", "source", None) == []


def test_concurrent_inserts_keep_indexes_consistent(small):
    def worker(n: int) -> None:
        for i in range(50):
            small.insert("items", {"kind": f"k{n}", "rank": i})

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert small.count("items") == 200
    for n in range(4):
        assert len(small.find_by_index("items", "kind", f"k{n}")) == 50


@pytest.mark.parametrize(
    "read",
    [
        lambda s, rec_id: s.find_by_id("items", rec_id)["kind"],
        lambda s, rec_id: s.count("items"),
        lambda s, rec_id: s.table_stats()["items"],
        lambda s, rec_id: s.total_records(),
        lambda s, rec_id: s.has_index("items", "kind"),
    ],
)
def test_reads_wait_for_open_batch(small, read):
    rec_id = small.insert("items", {"kind": "before"})
    entered = threading.Event()
    release = threading.Event()
    seen = []

    def writer() -> None:
        with small.batch():
            small.update("items", rec_id, {"kind": "during"})
            entered.set()
            release.wait(5)
            small.update("items", rec_id, {"kind": "after"})
            small.insert("items", {"kind": "extra"})

    w = threading.Thread(target=writer)
    w.start()
    assert entered.wait(5)
    r = threading.Thread(target=lambda: seen.append(read(small, rec_id)))
    r.start()
    r.join(0.2)
    assert r.is_alive()
    assert seen == []

    release.set()
    w.join()
    r.join()
    assert seen[0] in ("after", 2, True)
