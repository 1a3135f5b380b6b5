"""
Tests for invoice_memory/storage: in-memory, JSON-file and SQLite memory stores.
"""

import json
from datetime import UTC, datetime

import pytest

from invoice_memory.config.settings import MemoryStoreSettings, StoreBackend
from invoice_memory.models import Memory, MemoryKind
from invoice_memory.storage import (
    InMemoryMemoryStore,
    JsonFileMemoryStore,
    MemoryStore,
    MemoryStoreError,
    SqliteMemoryStore,
    create_memory_store,
    get_memory_store,
    reset_memory_store,
)
from invoice_memory.storage.sqlite_store import escape_like


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _memory(memory_id, content):
    return Memory(id=memory_id, kind=MemoryKind.LONG_TERM, content=content, source="test")


@pytest.fixture(params=["memory", "json", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryMemoryStore()
    if request.param == "json":
        return JsonFileMemoryStore(tmp_path / "memories.json")
    return SqliteMemoryStore(tmp_path / "memory.db")


# ---------------------------------------------------------------------------
# Behaviour shared by every backend
# ---------------------------------------------------------------------------


class TestMemoryStoreContract:

    def test_implements_protocol(self, store):
        assert isinstance(store, MemoryStore)

    def test_get_missing_returns_none(self, store):
        assert store.get_by_id("missing") is None

    def test_save_and_get(self, store):
        memory = _memory("m1", '{"vendorName": "Parts AG"}')
        store.save(memory)
        loaded = store.get_by_id("m1")
        assert loaded == memory

    def test_save_is_upsert(self, store):
        store.save(_memory("m1", '{"confidence": 0.8}'))
        store.save(_memory("m1", '{"confidence": 0.85}'))
        assert store.get_by_id("m1").content == '{"confidence": 0.85}'
        assert len(store.search_by_text("confidence", limit=10)) == 1

    def test_search_case_insensitive(self, store):
        store.save(_memory("m1", '{"vendorName": "Parts AG"}'))
        store.save(_memory("m2", '{"vendorName": "Supplier GmbH"}'))
        results = store.search_by_text("parts ag", limit=10)
        assert [m.id for m in results] == ["m1"]

    def test_search_respects_limit(self, store):
        for i in range(5):
            store.save(_memory(f"m{i}", f'{{"vendorName": "Parts AG", "n": {i}}}'))
        assert len(store.search_by_text("Parts AG", limit=3)) == 3

    def test_search_no_match(self, store):
        store.save(_memory("m1", '{"vendorName": "Parts AG"}'))
        assert store.search_by_text("Freight Co", limit=10) == []

    def test_search_treats_wildcards_literally(self, store):
        store.save(_memory("m1", '{"invoiceNumber": "INV_100%"}'))
        store.save(_memory("m2", '{"invoiceNumber": "INVX100X"}'))
        assert [m.id for m in store.search_by_text("INV_100%", limit=10)] == ["m1"]


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------


class TestInMemoryMemoryStore:

    def test_len(self):
        store = InMemoryMemoryStore()
        store.save(_memory("a", "{}"))
        store.save(_memory("b", "{}"))
        assert len(store) == 2

    def test_insertion_order_kept_on_upsert(self):
        store = InMemoryMemoryStore()
        store.save(_memory("a", "x"))
        store.save(_memory("b", "x"))
        store.save(_memory("a", "x updated"))
        assert [m.id for m in store.search_by_text("x", limit=10)] == ["a", "b"]


# ---------------------------------------------------------------------------
# JSON-file store
# ---------------------------------------------------------------------------


class TestJsonFileMemoryStore:

    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "memories.json"
        JsonFileMemoryStore(path).save(_memory("m1", '{"vendorName": "Parts AG"}'))

        reopened = JsonFileMemoryStore(path)
        assert reopened.get_by_id("m1").content == '{"vendorName": "Parts AG"}'

    def test_file_contents(self, tmp_path):
        path = tmp_path / "memories.json"
        store = JsonFileMemoryStore(path)
        store.save(_memory("m1", "{}"))

        data = json.loads(path.read_text(encoding="utf-8"))
        assert data[0]["id"] == "m1"
        assert "createdAt" in data[0]
        assert store.file_path == path

    def test_creates_parent_directory(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "memories.json"
        JsonFileMemoryStore(path)
        assert path.parent.is_dir()

    def test_corrupt_file_raises(self, tmp_path):
        path = tmp_path / "memories.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(MemoryStoreError):
            JsonFileMemoryStore(path)

    def test_failed_flush_rolls_back(self, tmp_path, monkeypatch):
        store = JsonFileMemoryStore(tmp_path / "memories.json")
        store.save(_memory("m1", "first"))

        def fail():
            raise MemoryStoreError("disk full")

        monkeypatch.setattr(store, "_flush", fail)

        with pytest.raises(MemoryStoreError):
            store.save(_memory("m1", "second"))
        with pytest.raises(MemoryStoreError):
            store.save(_memory("m2", "new"))

        assert store.get_by_id("m1").content == "first"
        assert store.get_by_id("m2") is None


# ---------------------------------------------------------------------------
# SQLite store
# ---------------------------------------------------------------------------


class TestSqliteMemoryStore:

    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "memory.db"
        SqliteMemoryStore(path).save(_memory("m1", '{"vendorName": "Parts AG"}'))

        reopened = SqliteMemoryStore(path)
        assert reopened.get_by_id("m1") is not None
        assert reopened.count() == 1

    def test_search_newest_first(self, tmp_path):
        store = SqliteMemoryStore(tmp_path / "memory.db")
        for memory_id in ("c", "a", "b"):
            store.save(_memory(memory_id, "Parts AG"))
        assert [m.id for m in store.search_by_text("Parts", limit=10)] == ["b", "a", "c"]

    def test_updated_memory_not_crowded_out(self, tmp_path):
        store = SqliteMemoryStore(tmp_path / "memory.db")
        rule = _memory("rule", '{"vendorName": "Parts AG", "category": "vendor"}')
        rule.updated_at = datetime(2024, 1, 1, tzinfo=UTC)
        store.save(rule)
        for index in range(5):
            resolution = _memory(f"res-{index}", '{"vendorName": "Parts AG", "category": "resolution"}')
            resolution.updated_at = datetime(2024, 2, 1 + index, tzinfo=UTC)
            store.save(resolution)

        assert "rule" not in [m.id for m in store.search_by_text("Parts AG", limit=3)]

        rule.updated_at = datetime(2024, 3, 1, tzinfo=UTC)
        store.save(rule)

        assert store.search_by_text("Parts AG", limit=3)[0].id == "rule"

    def test_unopenable_database_raises(self, tmp_path):
        directory = tmp_path / "memory.db"
        directory.mkdir()
        with pytest.raises(MemoryStoreError):
            SqliteMemoryStore(directory)

    @pytest.mark.parametrize(
        "query, expected",
        [
            ("plain", "plain"),
            ("100%", "100\\%"),
            ("INV_1", "INV\\_1"),
            ("back\\slash", "back\\\\slash"),
        ],
    )
    def test_escape_like(self, query, expected):
        assert escape_like(query) == expected


# ---------------------------------------------------------------------------
# Factory and singleton
# ---------------------------------------------------------------------------


class TestStoreFactory:

    def test_backends(self, tmp_path):
        memory = create_memory_store(MemoryStoreSettings(backend=StoreBackend.MEMORY))
        json_store = create_memory_store(
            MemoryStoreSettings(backend=StoreBackend.JSON, data_dir=tmp_path)
        )
        sqlite = create_memory_store(
            MemoryStoreSettings(backend=StoreBackend.SQLITE, data_dir=tmp_path)
        )

        assert isinstance(memory, InMemoryMemoryStore)
        assert isinstance(json_store, JsonFileMemoryStore)
        assert isinstance(sqlite, SqliteMemoryStore)
        assert sqlite.db_path == tmp_path / "memory.db"

    def test_default_uses_settings(self, tmp_path):
        store = create_memory_store()
        assert isinstance(store, SqliteMemoryStore)
        assert store.db_path == tmp_path / "memory" / "memory.db"

    def test_singleton(self):
        first = get_memory_store()
        assert get_memory_store() is first

        reset_memory_store()
        assert get_memory_store() is not first
