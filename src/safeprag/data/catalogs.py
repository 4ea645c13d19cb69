"""Read-only lookups over the catalog keys maintained by the entry forms."""

from __future__ import annotations

import logging

from safeprag.core.models import OperatorIdentity
from safeprag.data import storage_keys as keys
from safeprag.data.store import JsonStore
from safeprag.settings import RetentionPolicy, retention_from_dict

logger = logging.getLogger(__name__)

EMPTY_COMPANY = {"name": "", "cnpj": "", "address": "", "phone": "", "email": ""}


class Catalogs:
    def __init__(self, store: JsonStore):
        self.store = store

    def company(self) -> dict:
        data = self.store.get(keys.COMPANY)
        if not isinstance(data, dict):
            if data is not None:
                logger.warning("Dados da empresa inválidos; usando perfil vazio")
            return dict(EMPTY_COMPANY)
        return {**EMPTY_COMPANY, **data}

    def clients(self) -> list[dict]:
        return [c for c in self.store.get_list(keys.CLIENTS) if isinstance(c, dict)]

    def client(self, client_id: str) -> dict | None:
        client_id = str(client_id)
        for c in self.clients():
            if str(c.get("id")) == client_id or str(c.get("code")) == client_id:
                return c
        return None

    def products(self) -> list[dict]:
        return [p for p in self.store.get_list(keys.PRODUCTS) if isinstance(p, dict)]

    def product(self, product_id: str) -> dict | None:
        product_id = str(product_id)
        return next((p for p in self.products() if str(p.get("id")) == product_id), None)

    def operator(self) -> OperatorIdentity | None:
        return OperatorIdentity.from_dict(self.store.get(keys.OPERATOR_IDENTITY))

    def client_signature(self) -> dict:
        return self.store.get_dict(keys.CLIENT_SIGNATURE)

    def supervisor_signature(self) -> dict:
        return self.store.get_dict(keys.SUPERVISOR_SIGNATURE)


def load_retention_policy(store: JsonStore, base: RetentionPolicy | None = None) -> RetentionPolicy:
    """Retention defaults with overrides from ``SETTINGS.retention`` applied."""
    settings = store.get_dict(keys.SETTINGS)
    return retention_from_dict(settings.get("retention"), base)
