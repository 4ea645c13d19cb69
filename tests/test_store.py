"""Tests for the sqlite key-value store and the storage key registry."""

import tempfile
from pathlib import Path

import pytest

from safeprag.data import storage_keys as keys
from safeprag.data.db import Db
from safeprag.data.store import MemoryStore, SqliteStore


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    tmpdir = tempfile.mkdtemp()
    db_path = Path(tmpdir) / "test.db"
    db = Db(db_path)
    db.ensure_schema()
    yield db

    try:
        for f in Path(tmpdir).glob("test.db*"):
            f.unlink(missing_ok=True)
        Path(tmpdir).rmdir()
    except Exception:
        pass  # Ignore cleanup errors


def test_ensure_schema_creates_tables(temp_db):
    with temp_db.connect() as con:
        tables = {r[0] for r in con.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()}
    assert "kv_store" in tables
    assert "audit_log" in tables


def test_ensure_schema_is_idempotent(temp_db):
    temp_db.ensure_schema()
    temp_db.ensure_schema()
    store = SqliteStore(temp_db)
    store.set("k", [1])
    assert store.get("k") == [1]


def test_set_get_remove_roundtrip(temp_db):
    store = SqliteStore(temp_db)
    store.set(keys.CLIENTS, [{"id": "1", "name": "Padaria Pão Quente"}])

    assert store.get(keys.CLIENTS) == [{"id": "1", "name": "Padaria Pão Quente"}]
    assert keys.CLIENTS in store.keys()

    store.remove(keys.CLIENTS)
    assert store.get(keys.CLIENTS) is None
    assert store.get_list(keys.CLIENTS) == []


def test_set_overwrites_whole_key(temp_db):
    store = SqliteStore(temp_db)
    store.set(keys.SCHEDULES, [{"id": "1"}, {"id": "2"}])
    store.set(keys.SCHEDULES, [{"id": "3"}])
    assert store.get(keys.SCHEDULES) == [{"id": "3"}]


def test_corrupt_json_reads_as_empty(temp_db):
    store = SqliteStore(temp_db)
    store.set_raw(keys.SERVICE_ORDERS, "[{not json")

    assert store.get(keys.SERVICE_ORDERS) is None
    assert store.get_list(keys.SERVICE_ORDERS) == []
    assert store.get_raw(keys.SERVICE_ORDERS) == "[{not json"


def test_non_list_value_reads_as_empty_list():
    store = MemoryStore({keys.SERVICE_ORDERS: {"id": "1"}})
    assert store.get_list(keys.SERVICE_ORDERS) == []


def test_empty_key_rejected(temp_db):
    store = SqliteStore(temp_db)
    with pytest.raises(ValueError):
        store.set_raw("  ", "1")


def test_has_stored_data_checks_composite_subkeys():
    store = MemoryStore()
    assert not keys.has_stored_data(store, "SIGNATURES")

    store.set(keys.CLIENT_SIGNATURE, {"name": "Marta"})
    assert keys.has_stored_data(store, "SIGNATURES")
    assert not keys.has_stored_data(store, "COMPANY")
    assert not keys.has_stored_data(store, "UNKNOWN")


def test_clear_all_data_removes_registered_keys_only():
    store = MemoryStore({keys.COMPANY: {}, keys.OPERATOR_IDENTITY: {"name": "x"}, "other": 1})
    keys.clear_all_data(store)
    assert store.keys() == ["other"]


def test_audit_log_records_entries(temp_db):
    temp_db.log_audit("BACKUP", "Restaurado backup.json", "safeprag_clients")
    entries = temp_db.get_audit_log(limit=5)
    assert entries[0]["category"] == "BACKUP"
    assert entries[0]["details"] == "safeprag_clients"
