from __future__ import annotations

import json
import logging
from typing import Any, Iterator, Protocol

from safeprag.data.db import Db

logger = logging.getLogger(__name__)


class Store(Protocol):
    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...

    def remove(self, key: str) -> None: ...

    def get_raw(self, key: str) -> str | None: ...

    def set_raw(self, key: str, text: str) -> None: ...

    def keys(self) -> list[str]: ...

    def clear(self) -> None: ...


class JsonStore:
    """JSON (de)serialization on top of raw per-key text access.

    Subclasses implement the raw primitives. Reads fail open: a key holding
    text that is not valid JSON reads as ``None``.
    """

    def get_raw(self, key: str) -> str | None:
        raise NotImplementedError

    def set_raw(self, key: str, text: str) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError

    def keys(self) -> list[str]:
        raise NotImplementedError

    def get(self, key: str) -> Any | None:
        text = self.get_raw(key)
        if text is None:
            return None
        try:
            return json.loads(text)
        except ValueError:
            logger.warning("Dados corrompidos na chave %s; tratando como vazio", key)
            return None

    def set(self, key: str, value: Any) -> None:
        self.set_raw(key, json.dumps(value, ensure_ascii=False))

    def get_list(self, key: str) -> list:
        value = self.get(key)
        if value is None:
            return []
        if not isinstance(value, list):
            logger.warning("Chave %s não contém uma lista; tratando como vazia", key)
            return []
        return value

    def get_dict(self, key: str) -> dict:
        value = self.get(key)
        if not isinstance(value, dict):
            return {}
        return value

    def items_raw(self) -> Iterator[tuple[str, str]]:
        for key in self.keys():
            text = self.get_raw(key)
            if text is not None:
                yield key, text

    def clear(self) -> None:
        for key in self.keys():
            self.remove(key)


class MemoryStore(JsonStore):
    def __init__(self, initial: dict[str, Any] | None = None):
        self._data: dict[str, str] = {}
        for key, value in (initial or {}).items():
            self.set(key, value)

    def get_raw(self, key: str) -> str | None:
        return self._data.get(key)

    def set_raw(self, key: str, text: str) -> None:
        self._data[key] = str(text)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data.keys())


class SqliteStore(JsonStore):
    """Key-value store persisted in the ``kv_store`` table of a local sqlite file."""

    def __init__(self, db: Db):
        self.db = db

    def get_raw(self, key: str) -> str | None:
        with self.db.connect() as con:
            row = con.execute("SELECT value FROM kv_store WHERE key = ?", (str(key),)).fetchone()
        if row is None:
            return None
        return str(row[0])

    def set_raw(self, key: str, text: str) -> None:
        key = str(key).strip()
        if not key:
            raise ValueError("chave de armazenamento vazia")
        with self.db.connect() as con:
            con.execute(
                """
                INSERT INTO kv_store(key, value, updated_at) VALUES(?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, str(text)),
            )

    def remove(self, key: str) -> None:
        with self.db.connect() as con:
            con.execute("DELETE FROM kv_store WHERE key = ?", (str(key),))

    def keys(self) -> list[str]:
        with self.db.connect() as con:
            rows = con.execute("SELECT key FROM kv_store ORDER BY key").fetchall()
        return [str(r[0]) for r in rows]

    def clear(self) -> None:
        with self.db.connect() as con:
            con.execute("DELETE FROM kv_store")
