"""Backup / restore / factory reset over the storage key registry."""

from __future__ import annotations

import json

import pytest

from fixtures_field_data import (
    CLIENT_RECORD,
    FIXTURE_NOW,
    OPERATOR_RECORD,
    PRODUCT_RECORD,
    order_record,
    schedule_record,
)
from safeprag.core.clock import FixedClock
from safeprag.core.errors import ValidationError
from safeprag.core.events import SYSTEM_CLEANUP, EventBus
from safeprag.data import storage_keys as keys
from safeprag.data.backup import (
    backup_all_data,
    backup_filename,
    cleanup_system_data,
    read_backup_file,
    restore_backup,
    write_backup_file,
)
from safeprag.data.store import MemoryStore


@pytest.fixture
def populated():
    return MemoryStore(
        {
            keys.SERVICE_ORDERS: [order_record("1", created_at=FIXTURE_NOW.isoformat())],
            keys.SCHEDULES: [schedule_record("1")],
            keys.CLIENTS: [CLIENT_RECORD],
            keys.PRODUCTS: [PRODUCT_RECORD],
            keys.OPERATOR_IDENTITY: OPERATOR_RECORD,
            keys.CLIENT_SIGNATURE: {"signature": "data:image/png;base64,AAAA"},
        }
    )


def test_backup_uses_logical_names_and_nests_signatures(populated):
    snapshot = backup_all_data(populated)

    assert snapshot["SERVICE_ORDERS"][0]["id"] == "1"
    assert snapshot["CLIENTS"] == [CLIENT_RECORD]
    assert snapshot["SIGNATURES"] == {
        "TECHNICIAN": OPERATOR_RECORD,
        "CLIENT": {"signature": "data:image/png;base64,AAAA"},
    }
    assert "COMPANY" not in snapshot


def test_backup_keeps_unparseable_values_as_text(populated):
    populated.set_raw(keys.SETTINGS, "{broken")
    assert backup_all_data(populated)["SETTINGS"] == "{broken"


def test_signatures_present_even_when_empty():
    assert backup_all_data(MemoryStore()) == {"SIGNATURES": {}}


def test_restore_roundtrip(populated):
    snapshot = backup_all_data(populated)
    target = MemoryStore()

    restore_backup(target, snapshot)

    for key in populated.keys():
        assert target.get(key) == populated.get(key)


def test_restore_ignores_unknown_keys():
    target = MemoryStore()
    written = restore_backup(target, {"CLIENTS": [CLIENT_RECORD], "LEGACY_STUFF": [1, 2], "SIGNATURES": {"OTHER": 1}})

    assert written == [keys.CLIENTS]
    assert target.keys() == [keys.CLIENTS]


def test_restore_rejects_non_object():
    with pytest.raises(ValidationError):
        restore_backup(MemoryStore(), [1, 2, 3])


def test_cleanup_removes_system_keys_and_notifies(populated):
    events = EventBus()
    seen = []
    events.subscribe(SYSTEM_CLEANUP, seen.append)

    assert cleanup_system_data(populated, events)

    for key in (keys.SERVICE_ORDERS, keys.CLIENTS, keys.PRODUCTS, keys.OPERATOR_IDENTITY, keys.COMPANY):
        assert populated.get(key) is None
    assert populated.get_list(keys.SCHEDULES)
    assert seen == [{}]


def test_backup_file_roundtrip(tmp_path, populated):
    clock = FixedClock(FIXTURE_NOW)
    path = write_backup_file(populated, tmp_path, clock=clock)

    assert path.name == backup_filename(clock) == "backup_2026-03-10.json"
    snapshot = read_backup_file(path)
    assert snapshot["SCHEDULES"][0]["id"] == "1"


def test_read_backup_file_rejects_other_files(tmp_path):
    csv = tmp_path / "dados.csv"
    csv.write_text("a,b\n", encoding="utf-8")
    with pytest.raises(ValidationError, match=".json"):
        read_backup_file(csv)

    bad = tmp_path / "bad.json"
    bad.write_text("{nope", encoding="utf-8")
    with pytest.raises(ValidationError):
        read_backup_file(bad)

    listing = tmp_path / "list.json"
    listing.write_text(json.dumps([1, 2]), encoding="utf-8")
    with pytest.raises(ValidationError):
        read_backup_file(listing)
