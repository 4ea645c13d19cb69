"""Logical storage keys and their physical names.

Logical names are what backups carry; physical names are what the store holds.
"""

from __future__ import annotations

from safeprag.data.store import Store

STORAGE_KEYS: dict[str, str | dict[str, str]] = {
    "COMPANY": "safeprag_company_data",
    "CLIENTS": "safeprag_clients",
    "PRODUCTS": "safeprag_products",
    "SCHEDULES": "safeprag_schedules",
    "SETTINGS": "safeprag_settings",
    "SERVICE_ORDERS": "safeprag_service_orders",
    "SIGNATURES": {
        # Operator identity (controlador/técnico name and signatures).
        "TECHNICIAN": "userData",
        "CLIENT": "client_signature_data",
        "SUPERVISOR": "supervisor_assinatura",
    },
}

COMPANY = STORAGE_KEYS["COMPANY"]
CLIENTS = STORAGE_KEYS["CLIENTS"]
PRODUCTS = STORAGE_KEYS["PRODUCTS"]
SCHEDULES = STORAGE_KEYS["SCHEDULES"]
SETTINGS = STORAGE_KEYS["SETTINGS"]
SERVICE_ORDERS = STORAGE_KEYS["SERVICE_ORDERS"]
OPERATOR_IDENTITY = STORAGE_KEYS["SIGNATURES"]["TECHNICIAN"]
CLIENT_SIGNATURE = STORAGE_KEYS["SIGNATURES"]["CLIENT"]
SUPERVISOR_SIGNATURE = STORAGE_KEYS["SIGNATURES"]["SUPERVISOR"]

# Generated documents are kept apart from the backed-up domain keys.
SERVICE_ORDER_DOCUMENTS = "safeprag_service_order_pdfs"


def physical_keys() -> list[str]:
    """All physical keys registered above, composite sub-keys flattened."""
    out: list[str] = []
    for value in STORAGE_KEYS.values():
        if isinstance(value, str):
            out.append(value)
        else:
            out.extend(value.values())
    return out


def has_stored_data(store: Store, logical_key: str) -> bool:
    value = STORAGE_KEYS.get(logical_key)
    if value is None:
        return False
    if isinstance(value, str):
        return store.get_raw(value) is not None
    return any(store.get_raw(sub) is not None for sub in value.values())


def clear_all_data(store: Store) -> None:
    for key in physical_keys():
        store.remove(key)
