"""Service-order lifecycle.

State machine per order::

    (none) --create--> in_progress --finish--> completed --approve--> approved
    (none) --register_no_service--> cancelled

The store is single-writer and every operation runs to completion before the
next one starts, so admission control is a plain check at operation entry.
Cross-key coherence (order + schedule) is kept by writing the order first and
then cascading the schedule in the same call.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from typing import Iterable

from safeprag.core.clock import Clock, SystemClock, iso_now, today
from safeprag.core.devices import group_devices
from safeprag.core.errors import NotFoundError, PreconditionError, ValidationError
from safeprag.core.events import SERVICE_ORDER_UPDATE, EventBus
from safeprag.core.models import Device, DeviceGroup, Schedule, ServiceOrder, Signatures
from safeprag.data import storage_keys as keys
from safeprag.data.catalogs import Catalogs, load_retention_policy
from safeprag.data.pruning import cap_order_count, prune_orders_by_age, run_pruning, sweep_if_oversized
from safeprag.data.store import JsonStore
from safeprag.orders.schedules import ScheduleRegistry
from safeprag.settings import RetentionPolicy

logger = logging.getLogger(__name__)

OPERATOR_MISSING_MSG = "Dados do controlador não encontrados. Por favor, verifique a aba assinaturas."

# Fields an in-progress order may have edited before it is finished.
EDITABLE_FIELDS = frozenset({"notes", "treatment", "product", "signatures", "service_type"})


class ServiceOrderManager:
    def __init__(
        self,
        store: JsonStore,
        *,
        clock: Clock | None = None,
        events: EventBus | None = None,
        policy: RetentionPolicy | None = None,
        schedules: ScheduleRegistry | None = None,
    ):
        self.store = store
        self.clock = clock or SystemClock()
        self.events = events or EventBus()
        self.policy = policy or load_retention_policy(store)
        self.schedules = schedules or ScheduleRegistry(store, clock=self.clock, events=self.events)
        self.catalogs = Catalogs(store)

    # ------------------------------------------------------------------ storage

    def _records(self) -> list:
        return self.store.get_list(keys.SERVICE_ORDERS)

    def _write(self, records: list) -> None:
        self.store.set(keys.SERVICE_ORDERS, records)

    @staticmethod
    def _parse(records: Iterable) -> list[ServiceOrder]:
        return [o for o in (ServiceOrder.from_dict(r) for r in records) if o is not None]

    @staticmethod
    def _index_of(records: list, order_id: str) -> int | None:
        order_id = str(order_id)
        for i, raw in enumerate(records):
            if isinstance(raw, dict) and str(raw.get("id")) == order_id:
                return i
        return None

    def _load(self, order_id: str) -> tuple[list, int, ServiceOrder]:
        records = self._records()
        index = self._index_of(records, order_id)
        order = ServiceOrder.from_dict(records[index]) if index is not None else None
        if order is None:
            raise NotFoundError(f"Ordem de serviço não encontrada: {order_id}")
        return records, index, order

    def prune(self) -> dict[str, int]:
        return run_pruning(self.store, self.clock, self.policy)

    # ------------------------------------------------------------------ queries

    def get_all_service_orders(self) -> list[ServiceOrder]:
        """All orders after the size sweep and the count cap (soft eviction)."""
        sweep_if_oversized(
            self.store,
            self.clock,
            threshold_mb=self.policy.size_threshold_mb,
            keep_days=self.policy.sweep_keep_days,
        )
        cap_order_count(self.store, max_orders=self.policy.max_orders)
        return self._parse(self._records())

    def get_service_orders(self) -> list[ServiceOrder]:
        """All orders after dropping those past the retention window."""
        prune_orders_by_age(self.store, self.clock, max_age_days=self.policy.max_age_days)
        return self._parse(self._records())

    def get_order(self, order_id: str) -> ServiceOrder:
        return self._load(order_id)[2]

    def get_finished_service_orders(self) -> list[ServiceOrder]:
        finished = [
            o for o in self._parse(self._records())
            if o.end_time and o.status in ("completed", "approved")
        ]

        def _finished_at(o: ServiceOrder):
            return (o.date, o.end_time, o.updated_at)

        return sorted(finished, key=_finished_at, reverse=True)

    def search_orders(
        self,
        *,
        order_number: str | None = None,
        client_name: str | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> list[ServiceOrder]:
        """Filter orders by number, client name/branch and date range; newest first."""
        number = (order_number or "").strip().lower()
        name = (client_name or "").strip().lower()

        out = []
        for o in self.get_service_orders():
            if number and number not in o.id.lower():
                continue
            if name and name not in o.client_name.lower() and name not in o.client_branch.lower():
                continue
            if start_date and o.date < start_date:
                continue
            if end_date and o.date > end_date:
                continue
            out.append(o)
        return sorted(out, key=lambda o: (o.date, o.start_time, o.created_at), reverse=True)

    def next_order_number(self) -> int:
        """``max(numeric ids) + 1`` over all stored orders; other ids are ignored."""
        highest = 0
        for raw in self._records():
            if not isinstance(raw, dict):
                continue
            try:
                highest = max(highest, int(str(raw.get("id")).strip()))
            except ValueError:
                continue
        return highest + 1

    def has_active_service_order(self) -> bool:
        """True iff an order dated today is in progress (global admission gate)."""
        prune_orders_by_age(self.store, self.clock, max_age_days=self.policy.max_age_days)
        current_day = today(self.clock)
        active = [o for o in self._parse(self._records()) if o.date == current_day and o.status == "in_progress"]
        logger.debug("Ordens ativas hoje: %s", [o.id for o in active])
        return bool(active)

    def has_active_schedule(self, schedule_id: str) -> bool:
        schedule_id = str(schedule_id)
        return any(
            o.schedule_id == schedule_id and o.status == "in_progress"
            for o in self._parse(self._records())
        )

    def device_groups(self, order_id: str) -> list[DeviceGroup]:
        return group_devices(self.get_order(order_id).devices)

    # ------------------------------------------------------------------ commands

    def _operator_name(self) -> str:
        operator = self.catalogs.operator()
        if operator is None:
            raise PreconditionError(OPERATOR_MISSING_MSG)
        return operator.name

    def save_service_order(self, order: ServiceOrder) -> ServiceOrder:
        """Insert or replace an order by id, filling the operator name if blank."""
        if not order.controlador_name:
            order = replace(order, controlador_name=self._operator_name())

        records = self._records()
        index = self._index_of(records, order.id)
        if index is None:
            records.append(order.to_dict())
        else:
            records[index] = order.to_dict()
        self._write(records)
        logger.info("Ordem salva: id=%s controlador=%s", order.id, order.controlador_name)
        return order

    def create_service_order(self, schedule: Schedule) -> ServiceOrder:
        """Open an in-progress order bound 1:1 to ``schedule``.

        Does not touch the schedule; callers cascade with ``update_schedule_status``
        (``start_service_order`` does both).
        """
        controlador = self._operator_name()
        now = iso_now(self.clock)
        order = ServiceOrder(
            id=schedule.id,
            schedule_id=schedule.id,
            status="in_progress",
            created_at=now,
            updated_at=now,
            client_id=schedule.client_id,
            client_name=schedule.client_name,
            client_branch=schedule.client_branch or schedule.client_name,
            client_address=schedule.client_address or "",
            service_type=schedule.service_type or "",
            date=schedule.date,
            start_time=schedule.start_time or "",
            controlador_name=controlador,
            signatures=Signatures(),
        )
        self.save_service_order(order)
        logger.info("Nova ordem criada: id=%s controlador=%s", order.id, controlador)
        return order

    def start_service_order(self, schedule: Schedule) -> ServiceOrder:
        """Admission-controlled start: one active order per day, never the same schedule twice."""
        if self.has_active_schedule(schedule.id):
            raise PreconditionError(f"O agendamento {schedule.id} já está em andamento")
        if self.has_active_service_order():
            raise PreconditionError("Já existe uma ordem de serviço em andamento hoje")

        order = self.create_service_order(schedule)
        order = replace(order, service_start_time=self.clock.now().strftime("%H:%M:%S"))
        self.save_service_order(order)
        self.update_schedule_status(schedule.id, "in_progress")
        self.events.emit(
            SERVICE_ORDER_UPDATE,
            {"orderId": order.id, "scheduleId": order.schedule_id, "status": order.status},
        )
        return order

    def update_service_order(self, order_id: str, **changes) -> ServiceOrder:
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Campos não editáveis: {', '.join(sorted(unknown))}")

        records, index, order = self._load(order_id)
        if order.status != "in_progress":
            raise ValidationError(f"A ordem {order.id} não está em andamento")

        if "signatures" in changes and isinstance(changes["signatures"], dict):
            changes["signatures"] = Signatures.from_dict(changes["signatures"])

        updated = replace(order, updated_at=iso_now(self.clock), **changes)
        records[index] = updated.to_dict()
        self._write(records)
        return updated

    def save_devices(self, order_id: str, devices: Iterable[Device]) -> ServiceOrder:
        """Append a saved device batch to the order; ids are not deduplicated."""
        records, index, order = self._load(order_id)
        if order.status != "in_progress":
            raise ValidationError(f"A ordem {order.id} não está em andamento")

        batch = tuple(devices)
        updated = replace(order, devices=order.devices + batch, updated_at=iso_now(self.clock))
        records[index] = updated.to_dict()
        self._write(records)
        logger.info("Ordem %s: %d dispositivos adicionados (%d no total)", order.id, len(batch), len(updated.devices))
        return updated

    def finish_service_order(self, order_id: str) -> ServiceOrder:
        records, index, order = self._load(order_id)

        if order.status != "in_progress":
            raise ValidationError(f"A ordem {order.id} não está em andamento")
        if order.requires_treatment and not order.treatment:
            raise ValidationError("O campo tratamento é obrigatório para este tipo de serviço")

        now = self.clock.now()
        end_time = now.strftime("%H:%M:%S")
        updated = replace(order, status="completed", end_time=end_time, updated_at=now.isoformat())

        # Persist the order before cascading and notifying.
        records[index] = updated.to_dict()
        self._write(records)

        self.update_schedule_status(updated.schedule_id, "completed")
        self.events.emit(
            SERVICE_ORDER_UPDATE,
            {
                "orderId": updated.id,
                "scheduleId": updated.schedule_id,
                "status": "completed",
                "endTime": end_time,
            },
        )
        logger.info("Ordem %s finalizada às %s", updated.id, end_time)
        return updated

    def register_no_service(self, schedule: Schedule, reason: str) -> ServiceOrder:
        """Record that a visit could not be performed; never passes through in_progress."""
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("Informe o motivo do não atendimento")

        operator = self.catalogs.operator()
        now = iso_now(self.clock)
        order = ServiceOrder(
            id=str(uuid.uuid4()),
            schedule_id=schedule.id,
            status="cancelled",
            created_at=now,
            updated_at=now,
            client_id=schedule.client_id,
            client_name=schedule.client_name,
            client_branch=schedule.client_branch or schedule.client_name,
            client_address=schedule.client_address or "",
            service_type=schedule.service_type or "",
            date=schedule.date,
            controlador_name=operator.name if operator else "",
            no_service_reason=reason,
        )

        self.get_all_service_orders()  # size sweep and count cap
        records = self._records()
        records.append(order.to_dict())
        self._write(records)

        self.update_schedule_status(schedule.id, "cancelled")
        logger.info("Não atendimento registrado para o agendamento %s: %s", schedule.id, reason)
        return order

    def approve_service_order(self, order_id: str) -> ServiceOrder:
        # Any prior status is accepted, matching the field workflow.
        records, index, order = self._load(order_id)
        updated = replace(order, status="approved", updated_at=iso_now(self.clock))
        records[index] = updated.to_dict()
        self._write(records)

        self.events.emit(SERVICE_ORDER_UPDATE, {"orderId": updated.id, "status": "approved"})
        logger.info("Ordem %s aprovada (status anterior: %s)", updated.id, order.status)
        return updated

    def finish_all_active_service_orders(self) -> list[str]:
        """Administrative recovery: complete every in-progress order.

        Afterwards today's still-pending schedules whose linked order is
        completed are marked completed too. Returns the finished order ids.
        """
        self.get_all_service_orders()
        records = self._records()
        now = self.clock.now()
        end_time = now.strftime("%H:%M")

        affected: list[ServiceOrder] = []
        for i, raw in enumerate(records):
            order = ServiceOrder.from_dict(raw)
            if order is None or order.status != "in_progress":
                continue
            updated = replace(order, status="completed", end_time=end_time, updated_at=now.isoformat())
            records[i] = updated.to_dict()
            affected.append(updated)

        if affected:
            self._write(records)

        for order in affected:
            self.update_schedule_status(order.schedule_id, "completed")
            self.events.emit(
                SERVICE_ORDER_UPDATE,
                {"orderId": order.id, "scheduleId": order.schedule_id, "status": "completed", "endTime": end_time},
            )

        completed_schedule_ids = {o.schedule_id for o in self._parse(records) if o.status == "completed"}
        current_day = today(self.clock)
        for schedule in self.schedules.schedules_for_date(current_day):
            if schedule.status == "pending" and schedule.id in completed_schedule_ids:
                self.update_schedule_status(schedule.id, "completed")

        logger.warning("Finalizadas %d ordens em andamento", len(affected))
        return [o.id for o in affected]

    def update_schedule_status(self, schedule_id: str, status: str) -> Schedule | None:
        return self.schedules.update_status(schedule_id, status)

    def reconcile_schedules(self, day: str | None = None) -> list[str]:
        """Re-derive the statuses of one day's schedules (default: today) from their orders."""
        return self.schedules.reconcile_by_date(day or today(self.clock), self._parse(self._records()))
