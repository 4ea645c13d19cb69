from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from fixtures_field_data import CLIENT_RECORD, schedule_record
from safeprag.app import main
from safeprag.data import storage_keys as keys
from safeprag.data.db import Db
from safeprag.data.store import SqliteStore


@pytest.fixture(autouse=True)
def _reset_root_logging():
    yield
    logging.getLogger().handlers.clear()


def _store(db_path) -> SqliteStore:
    db = Db(db_path)
    db.ensure_schema()
    return SqliteStore(db)


def test_backup_then_restore_into_new_db(tmp_path, capsys):
    source = tmp_path / "a.db"
    _store(source).set(keys.CLIENTS, [CLIENT_RECORD])

    assert main(["--db", str(source), "backup", "--out", str(tmp_path / "bk")]) == 0
    backup_path = capsys.readouterr().out.strip().splitlines()[-1]
    assert Db(source).get_audit_log()[0]["message"] == f"Backup gerado {Path(backup_path).name}"
    assert json.loads(open(backup_path, encoding="utf-8").read())["CLIENTS"] == [CLIENT_RECORD]

    target = tmp_path / "b.db"
    assert main(["--db", str(target), "restore", backup_path]) == 0
    assert _store(target).get(keys.CLIENTS) == [CLIENT_RECORD]
    assert Db(target).get_audit_log()[0]["category"] == "BACKUP"


def test_restore_rejects_non_json(tmp_path, capsys):
    bogus = tmp_path / "x.txt"
    bogus.write_text("{}", encoding="utf-8")

    assert main(["--db", str(tmp_path / "a.db"), "restore", str(bogus)]) == 1
    assert ".json" in capsys.readouterr().err


def test_cleanup_requires_confirmation(tmp_path):
    db_path = tmp_path / "a.db"
    _store(db_path).set(keys.CLIENTS, [CLIENT_RECORD])

    assert main(["--db", str(db_path), "cleanup"]) == 2
    assert _store(db_path).get(keys.CLIENTS) == [CLIENT_RECORD]

    assert main(["--db", str(db_path), "cleanup", "--yes"]) == 0
    assert _store(db_path).get(keys.CLIENTS) is None


def test_reconcile_command(tmp_path, capsys):
    db_path = tmp_path / "a.db"
    _store(db_path).set(keys.SCHEDULES, [schedule_record("1", date="2020-01-01")])

    assert main(["--db", str(db_path), "reconcile", "--date", "2020-01-01"]) == 0
    assert "1 agendamentos" in capsys.readouterr().out
    assert _store(db_path).get(keys.SCHEDULES)[0]["status"] == "cancelled"
