from __future__ import annotations


from contextlib import contextmanager
import sqlite3
from pathlib import Path


class Db:
    def __init__(self, path: Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def connect(self):
        con = sqlite3.connect(self.path, timeout=20.0)
        con.row_factory = sqlite3.Row
        try:
            yield con
            con.commit()
        except Exception:
            con.rollback()
            raise
        finally:
            con.close()

    def ensure_schema(self) -> None:
        con = sqlite3.connect(self.path, timeout=10.0)
        try:
            con.execute("PRAGMA journal_mode=WAL;")

            con.executescript(
                """
                -- One row per storage key; the value is the JSON text of the
                -- whole collection, so a write replaces the key atomically.
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
                );

                CREATE TABLE IF NOT EXISTS audit_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL DEFAULT(datetime('now', 'localtime')),
                    category TEXT NOT NULL,
                    message TEXT NOT NULL,
                    details TEXT
                );
                """
            )

            # kv_store v1 lacked updated_at
            cols = [r[1] for r in con.execute("PRAGMA table_info(kv_store)").fetchall()]
            if "updated_at" not in cols:
                con.execute("ALTER TABLE kv_store ADD COLUMN updated_at TEXT")
            con.commit()
        finally:
            con.close()

    def log_audit(self, category: str, message: str, details: str | None = None) -> None:
        with self.connect() as con:
            con.execute(
                "INSERT INTO audit_log(category, message, details) VALUES(?, ?, ?)",
                (str(category), str(message), details),
            )

    def get_audit_log(self, *, limit: int = 100) -> list[dict]:
        with self.connect() as con:
            rows = con.execute(
                "SELECT id, timestamp, category, message, details FROM audit_log ORDER BY id DESC LIMIT ?",
                (int(limit),),
            ).fetchall()
        return [dict(r) for r in rows]
