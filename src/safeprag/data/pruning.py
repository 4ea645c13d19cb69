"""Lazy retention passes over the service-order collection.

Each pass only removes entries, so the passes can run in any order and any
combination within one read.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from safeprag.core.clock import Clock, age_in_days, parse_iso
from safeprag.data import storage_keys as keys
from safeprag.data.store import JsonStore
from safeprag.settings import RetentionPolicy

logger = logging.getLogger(__name__)

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)

# Keys that survive the oversized-store sweep.
ESSENTIAL_KEYS = frozenset({keys.SERVICE_ORDERS, keys.OPERATOR_IDENTITY, keys.COMPANY})


def estimate_usage_mb(store: JsonStore) -> float:
    """Approximate footprint: two bytes (UTF-16) per stored character."""
    total_bytes = sum(len(text) * 2 for _, text in store.items_raw())
    return total_bytes / (1024 * 1024)


def usage_report(store: JsonStore) -> dict:
    details = {}
    total = 0.0
    for key, text in store.items_raw():
        size = len(text) * 2 / (1024 * 1024)
        total += size
        details[key] = round(size, 4)
    return {"total_mb": round(total, 4), "keys": details}


def _created_at(order: dict) -> datetime:
    return parse_iso(order.get("createdAt") if isinstance(order, dict) else None) or _OLDEST


def prune_orders_by_age(store: JsonStore, clock: Clock, *, max_age_days: int = 30) -> int:
    """Drop orders created more than ``max_age_days`` ago.

    Orders without a readable ``createdAt`` are dropped too. Idempotent for a
    fixed clock.
    """
    orders = store.get_list(keys.SERVICE_ORDERS)
    if not orders:
        return 0

    kept = []
    for order in orders:
        age = age_in_days(order.get("createdAt") if isinstance(order, dict) else None, clock)
        if age is not None and age <= max_age_days:
            kept.append(order)
        else:
            logger.info("Removendo ordem antiga: %s", order.get("id") if isinstance(order, dict) else order)

    removed = len(orders) - len(kept)
    if removed:
        store.set(keys.SERVICE_ORDERS, kept)
        logger.info("Removidas %d ordens antigas", removed)
    return removed


def cap_order_count(store: JsonStore, *, max_orders: int = 100) -> int:
    """Keep only the ``max_orders`` most recently created orders."""
    orders = store.get_list(keys.SERVICE_ORDERS)
    if len(orders) <= max_orders:
        return 0

    ranked = sorted(range(len(orders)), key=lambda i: _created_at(orders[i]), reverse=True)
    survivors = set(ranked[:max_orders])
    kept = [o for i, o in enumerate(orders) if i in survivors]
    store.set(keys.SERVICE_ORDERS, kept)

    removed = len(orders) - len(kept)
    logger.warning("Muitas ordens encontradas, mantendo apenas as %d mais recentes (%d removidas)", max_orders, removed)
    return removed


def sweep_if_oversized(
    store: JsonStore,
    clock: Clock,
    *,
    threshold_mb: float = 8.0,
    keep_days: int = 90,
) -> int:
    """Aggressive sweep once the store grows past ``threshold_mb``.

    Keeps orders from the last ``keep_days`` days and removes every key other
    than orders, operator identity and company profile. Returns the number of
    orders plus keys removed.
    """
    usage = estimate_usage_mb(store)
    if usage <= threshold_mb:
        return 0

    logger.warning("Armazenamento em %.2f MB (limite %.2f MB); limpeza seletiva", usage, threshold_mb)

    removed = 0
    orders = store.get_list(keys.SERVICE_ORDERS)
    if orders:
        recent = []
        for order in orders:
            age = age_in_days(order.get("createdAt") if isinstance(order, dict) else None, clock)
            if age is not None and age <= keep_days:
                recent.append(order)
        removed += len(orders) - len(recent)
        store.set(keys.SERVICE_ORDERS, recent)

    for key in store.keys():
        if key not in ESSENTIAL_KEYS:
            store.remove(key)
            removed += 1
    return removed


def run_pruning(store: JsonStore, clock: Clock, policy: RetentionPolicy | None = None) -> dict[str, int]:
    policy = policy or RetentionPolicy()
    return {
        "size": sweep_if_oversized(
            store,
            clock,
            threshold_mb=policy.size_threshold_mb,
            keep_days=policy.sweep_keep_days,
        ),
        "age": prune_orders_by_age(store, clock, max_age_days=policy.max_age_days),
        "count": cap_order_count(store, max_orders=policy.max_orders),
    }
