from __future__ import annotations

import json
import logging
from typing import Iterable

from safeprag.core.clock import Clock, SystemClock, iso_now, today
from safeprag.core.errors import ValidationError
from safeprag.core.events import SCHEDULE_UPDATE, STORE_CHANGED, EventBus
from safeprag.core.models import SCHEDULE_STATUSES, Schedule, ServiceOrder
from safeprag.data import storage_keys as keys
from safeprag.data.store import JsonStore

logger = logging.getLogger(__name__)


class ScheduleRegistry:
    """Ordered collection of planned visits stored under ``SCHEDULES``.

    Writes go through the raw records so entries this version cannot parse are
    carried along untouched.
    """

    def __init__(self, store: JsonStore, *, clock: Clock | None = None, events: EventBus | None = None):
        self.store = store
        self.clock = clock or SystemClock()
        self.events = events or EventBus()

    def _records(self) -> list:
        return self.store.get_list(keys.SCHEDULES)

    def list_schedules(self) -> list[Schedule]:
        return [s for s in (Schedule.from_dict(r) for r in self._records()) if s is not None]

    def get(self, schedule_id: str) -> Schedule | None:
        schedule_id = str(schedule_id)
        return next((s for s in self.list_schedules() if s.id == schedule_id), None)

    def schedules_for_date(self, day: str) -> list[Schedule]:
        return [s for s in self.list_schedules() if s.date == day]

    def save(self, schedule: Schedule) -> Schedule:
        records = self._records()
        payload = schedule.to_dict()
        for i, raw in enumerate(records):
            if isinstance(raw, dict) and str(raw.get("id")) == schedule.id:
                records[i] = payload
                break
        else:
            records.append(payload)
        self.store.set(keys.SCHEDULES, records)
        return schedule

    def update_status(self, schedule_id: str, status: str) -> Schedule | None:
        """Set a schedule's status and notify observers.

        A missing schedule is logged and ignored: schedules may have been pruned
        or deleted independently of their orders.
        """
        if status not in SCHEDULE_STATUSES:
            raise ValidationError(f"Status de agendamento inválido: {status!r}")

        schedule_id = str(schedule_id)
        logger.info("Atualizando status do agendamento %s para %s", schedule_id, status)

        records = self._records()
        index = next(
            (i for i, r in enumerate(records) if isinstance(r, dict) and str(r.get("id")) == schedule_id),
            None,
        )
        if index is None:
            logger.warning("Agendamento não encontrado: %s", schedule_id)
            return None

        updated = {**records[index], "status": status, "updatedAt": iso_now(self.clock)}
        records[index] = updated
        self.store.set(keys.SCHEDULES, records)

        self.events.emit(
            SCHEDULE_UPDATE,
            {
                "scheduleId": schedule_id,
                "status": status,
                "schedule": updated,
                "timestamp": iso_now(self.clock),
            },
        )
        # Observers keyed on the storage key rather than the domain event.
        self.events.emit(
            STORE_CHANGED,
            {"key": keys.SCHEDULES, "newValue": json.dumps(records, ensure_ascii=False)},
        )
        return Schedule.from_dict(updated)

    def _is_past_due(self, schedule: Schedule) -> bool:
        current_day = today(self.clock)
        if schedule.date < current_day:
            return True
        if schedule.date > current_day:
            return False
        current_time = self.clock.now().strftime("%H:%M")
        return bool(schedule.end_time) and schedule.end_time[:5] <= current_time

    def reconcile_by_date(self, day: str, orders: Iterable[ServiceOrder]) -> list[str]:
        """Bring the statuses of one day's schedules in line with their orders.

        Linked order completed -> completed; linked order in progress ->
        in_progress; no order and past due while pending -> cancelled; no order,
        not yet due, but cancelled -> pending. Returns the ids that changed.
        """
        by_schedule: dict[str, ServiceOrder] = {}
        for order in orders:
            by_schedule.setdefault(order.schedule_id, order)

        changed: list[str] = []
        for schedule in self.schedules_for_date(day):
            related = by_schedule.get(schedule.id)
            past_due = self._is_past_due(schedule)
            new_status = schedule.status

            if related is not None:
                if related.status == "completed":
                    new_status = "completed"
                elif related.status == "in_progress":
                    new_status = "in_progress"
            elif past_due and schedule.status == "pending":
                new_status = "cancelled"
            elif not past_due and schedule.status == "cancelled":
                new_status = "pending"

            if new_status != schedule.status:
                self.update_status(schedule.id, new_status)
                changed.append(schedule.id)

        logger.info("Agendamentos de %s reconciliados: %d alterados", day, len(changed))
        return changed
