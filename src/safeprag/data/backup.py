from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from safeprag.core.clock import Clock, SystemClock, today
from safeprag.core.errors import ValidationError
from safeprag.core.events import SYSTEM_CLEANUP, EventBus
from safeprag.data import storage_keys as keys
from safeprag.data.store import JsonStore

logger = logging.getLogger(__name__)

# Keys wiped by the factory reset. Schedules and settings are left in place.
SYSTEM_DATA_KEYS = (
    keys.SERVICE_ORDERS,
    keys.COMPANY,
    keys.CLIENTS,
    keys.PRODUCTS,
    keys.OPERATOR_IDENTITY,
)


def _parse_or_raw(text: str, label: str) -> Any:
    try:
        return json.loads(text)
    except ValueError:
        logger.error("Erro ao fazer parse dos dados de %s; salvando como texto", label)
        return text


def backup_all_data(store: JsonStore) -> dict[str, Any]:
    """Snapshot every registered key, keyed by logical name.

    Composite keys nest one level deeper. Values that are not valid JSON are
    carried as raw strings instead of being dropped.
    """
    backup: dict[str, Any] = {}
    for logical, physical in keys.STORAGE_KEYS.items():
        if isinstance(physical, str):
            text = store.get_raw(physical)
            if text:
                backup[logical] = _parse_or_raw(text, logical)
            continue

        nested: dict[str, Any] = {}
        for sub_key, storage_key in physical.items():
            text = store.get_raw(storage_key)
            if text:
                nested[sub_key] = _parse_or_raw(text, f"{logical}.{sub_key}")
        backup[logical] = nested
    return backup


def restore_backup(store: JsonStore, snapshot: Any) -> list[str]:
    """Write a snapshot back verbatim. Unknown keys are ignored.

    This is a trusted bulk overwrite: record invariants are not re-validated.
    Returns the physical keys written.
    """
    if not isinstance(snapshot, dict):
        raise ValidationError("Backup inválido: esperado um objeto JSON")

    written: list[str] = []
    for logical, data in snapshot.items():
        physical = keys.STORAGE_KEYS.get(logical)
        if physical is None:
            logger.info("Chave desconhecida no backup ignorada: %s", logical)
            continue

        if isinstance(physical, str):
            store.set(physical, data)
            written.append(physical)
        elif isinstance(data, dict):
            for sub_key, sub_data in data.items():
                storage_key = physical.get(sub_key)
                if storage_key:
                    store.set(storage_key, sub_data)
                    written.append(storage_key)
    logger.info("Backup restaurado: %d chaves", len(written))
    return written


def cleanup_system_data(store: JsonStore, events: EventBus | None = None) -> bool:
    """Factory reset. Callers must drop any in-memory state afterwards."""
    for key in SYSTEM_DATA_KEYS:
        store.remove(key)
    logger.warning("Dados do sistema removidos")
    if events is not None:
        events.emit(SYSTEM_CLEANUP, {})
    return True


def backup_filename(clock: Clock) -> str:
    return f"backup_{today(clock)}.json"


def write_backup_file(store: JsonStore, folder: Path, *, clock: Clock | None = None) -> Path:
    folder = Path(folder)
    folder.mkdir(parents=True, exist_ok=True)
    path = folder / backup_filename(clock or SystemClock())
    path.write_text(json.dumps(backup_all_data(store), ensure_ascii=False), encoding="utf-8")
    logger.info("Backup gravado em %s", path)
    return path


def read_backup_file(path: Path) -> dict[str, Any]:
    """Load a backup file, refusing anything that is not a JSON object."""
    path = Path(path)
    if path.suffix.lower() != ".json":
        raise ValidationError("Por favor, selecione apenas arquivos .json")
    try:
        snapshot = json.loads(path.read_text(encoding="utf-8"))
    except ValueError as exc:
        raise ValidationError("Arquivo inválido. Selecione um arquivo de backup JSON válido.") from exc
    if not isinstance(snapshot, dict):
        raise ValidationError("Arquivo inválido. Selecione um arquivo de backup JSON válido.")
    return snapshot
