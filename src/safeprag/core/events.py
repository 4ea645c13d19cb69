"""Publish/subscribe channel for change notifications.

Observers re-read the store on notification; payloads are hints, not
complete snapshots.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

SCHEDULE_UPDATE = "scheduleUpdate"
SERVICE_ORDER_UPDATE = "serviceOrderUpdate"
STORE_CHANGED = "storeChanged"
SYSTEM_CLEANUP = "systemCleanup"

Listener = Callable[[dict[str, Any]], None]


class EventBus:
    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    def subscribe(self, event: str, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for ``event``; returns an unsubscribe callable."""
        self._listeners[event].append(listener)

        def _unsubscribe() -> None:
            try:
                self._listeners[event].remove(listener)
            except ValueError:
                pass

        return _unsubscribe

    def on_order_changed(self, listener: Listener) -> Callable[[], None]:
        return self.subscribe(SERVICE_ORDER_UPDATE, listener)

    def on_schedule_changed(self, listener: Listener) -> Callable[[], None]:
        return self.subscribe(SCHEDULE_UPDATE, listener)

    def on_store_changed(self, listener: Listener) -> Callable[[], None]:
        return self.subscribe(STORE_CHANGED, listener)

    def emit(self, event: str, payload: dict[str, Any] | None = None) -> None:
        payload = dict(payload or {})
        logger.debug("Evento %s: %s", event, payload)
        for listener in list(self._listeners.get(event, ())):
            # A failing observer must not abort the operation that emitted.
            try:
                listener(payload)
            except Exception:
                logger.exception("Observador de %s falhou", event)
