from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

SCHEDULE_STATUSES = ("pending", "in_progress", "completed", "cancelled")
ORDER_STATUSES = ("in_progress", "completed", "cancelled", "approved")

# Service types whose order cannot be finished without a ``treatment``.
TREATMENT_SERVICE_TYPES = frozenset(
    {"pulverizacao", "atomizacao", "termonebulizacao", "polvilhamento", "iscagem_gel"}
)

NO_STATUS = "N/A"


def _str(value, default: str = "") -> str:
    if value is None:
        return default
    return str(value)


def _opt_str(value) -> str | None:
    if value is None:
        return None
    s = str(value)
    return s if s else None


@dataclass(frozen=True)
class Schedule:
    id: str
    client_id: str
    client_name: str
    date: str
    start_time: str
    end_time: str
    status: str = "pending"
    client_branch: str | None = None
    client_address: str | None = None
    client_contact: str | None = None
    client_phone: str | None = None
    service_type: str | None = None
    updated_at: str | None = None
    extra: dict[str, Any] = field(default_factory=dict, compare=False)

    _KNOWN = {
        "id", "clientId", "clientName", "clientBranch", "clientAddress", "clientContact",
        "clientPhone", "serviceType", "date", "startTime", "endTime", "status", "updatedAt",
    }

    @classmethod
    def from_dict(cls, raw) -> Schedule | None:
        """Validating deserializer; malformed records come back as ``None``."""
        if not isinstance(raw, dict):
            return None
        sid = _opt_str(raw.get("id"))
        status = _str(raw.get("status"), "pending")
        if sid is None or status not in SCHEDULE_STATUSES:
            logger.warning("Agendamento inválido ignorado: id=%r status=%r", raw.get("id"), raw.get("status"))
            return None
        return cls(
            id=sid,
            client_id=_str(raw.get("clientId")),
            client_name=_str(raw.get("clientName")),
            date=_str(raw.get("date")),
            start_time=_str(raw.get("startTime")),
            end_time=_str(raw.get("endTime")),
            status=status,
            client_branch=_opt_str(raw.get("clientBranch")),
            client_address=_opt_str(raw.get("clientAddress")),
            client_contact=_opt_str(raw.get("clientContact")),
            client_phone=_opt_str(raw.get("clientPhone")),
            service_type=_opt_str(raw.get("serviceType")),
            updated_at=_opt_str(raw.get("updatedAt")),
            extra={k: v for k, v in raw.items() if k not in cls._KNOWN},
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = dict(self.extra)
        out.update(
            {
                "id": self.id,
                "clientId": self.client_id,
                "clientName": self.client_name,
                "date": self.date,
                "startTime": self.start_time,
                "endTime": self.end_time,
                "status": self.status,
            }
        )
        optional = {
            "clientBranch": self.client_branch,
            "clientAddress": self.client_address,
            "clientContact": self.client_contact,
            "clientPhone": self.client_phone,
            "serviceType": self.service_type,
            "updatedAt": self.updated_at,
        }
        out.update({k: v for k, v in optional.items() if v is not None})
        return out


@dataclass(frozen=True)
class Device:
    id: int
    type: str
    number: int
    status: str | None = None

    @classmethod
    def from_dict(cls, raw) -> Device | None:
        if not isinstance(raw, dict):
            return None
        try:
            number = int(raw.get("number"))
            device_id = int(raw.get("id", number))
        except (TypeError, ValueError):
            logger.warning("Dispositivo inválido ignorado: %r", raw)
            return None
        return cls(
            id=device_id,
            type=_str(raw.get("type")),
            number=number,
            status=_opt_str(raw.get("status")),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"id": self.id, "type": self.type, "number": self.number}
        if self.status is not None:
            out["status"] = self.status
        return out


@dataclass(frozen=True)
class Signatures:
    client: str = ""
    technician: str = ""

    @classmethod
    def from_dict(cls, raw) -> Signatures:
        if not isinstance(raw, dict):
            return cls()
        return cls(client=_str(raw.get("client")), technician=_str(raw.get("technician")))

    def to_dict(self) -> dict[str, str]:
        return {"client": self.client, "technician": self.technician}


@dataclass(frozen=True)
class ServiceOrder:
    id: str
    schedule_id: str
    status: str
    created_at: str
    updated_at: str
    client_id: str = ""
    client_name: str = ""
    client_branch: str = ""
    client_address: str = ""
    service_type: str = ""
    date: str = ""
    start_time: str = ""
    service_start_time: str = ""
    end_time: str = ""
    notes: str = ""
    controlador_name: str = ""
    no_service_reason: str | None = None
    treatment: str | None = None
    signatures: Signatures = field(default_factory=Signatures)
    product: dict[str, Any] | None = None
    devices: tuple[Device, ...] = ()
    extra: dict[str, Any] = field(default_factory=dict, compare=False)

    _KNOWN = {
        "id", "scheduleId", "clientId", "clientName", "clientBranch", "clientAddress",
        "serviceType", "date", "startTime", "serviceStartTime", "endTime", "status",
        "createdAt", "updatedAt", "notes", "controladorName", "noServiceReason",
        "treatment", "signatures", "product", "devices",
    }

    @property
    def requires_treatment(self) -> bool:
        return self.service_type.strip().lower() in TREATMENT_SERVICE_TYPES

    @classmethod
    def from_dict(cls, raw) -> ServiceOrder | None:
        """Validating deserializer; malformed records come back as ``None``."""
        if not isinstance(raw, dict):
            return None
        oid = _opt_str(raw.get("id"))
        status = _str(raw.get("status"))
        if oid is None or status not in ORDER_STATUSES:
            logger.warning("Ordem de serviço inválida ignorada: id=%r status=%r", raw.get("id"), raw.get("status"))
            return None

        devices_raw = raw.get("devices") or []
        devices = tuple(d for d in (Device.from_dict(x) for x in devices_raw) if d is not None) if isinstance(devices_raw, list) else ()
        product = raw.get("product")

        return cls(
            id=oid,
            schedule_id=_str(raw.get("scheduleId")),
            status=status,
            created_at=_str(raw.get("createdAt")),
            updated_at=_str(raw.get("updatedAt")),
            client_id=_str(raw.get("clientId")),
            client_name=_str(raw.get("clientName")),
            client_branch=_str(raw.get("clientBranch")),
            client_address=_str(raw.get("clientAddress")),
            service_type=_str(raw.get("serviceType")),
            date=_str(raw.get("date")),
            start_time=_str(raw.get("startTime")),
            service_start_time=_str(raw.get("serviceStartTime")),
            end_time=_str(raw.get("endTime")),
            notes=_str(raw.get("notes")),
            controlador_name=_str(raw.get("controladorName")),
            no_service_reason=_opt_str(raw.get("noServiceReason")),
            treatment=_opt_str(raw.get("treatment")),
            signatures=Signatures.from_dict(raw.get("signatures")),
            product=product if isinstance(product, dict) else None,
            devices=devices,
            extra={k: v for k, v in raw.items() if k not in cls._KNOWN},
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = dict(self.extra)
        out.update(
            {
                "id": self.id,
                "scheduleId": self.schedule_id,
                "clientId": self.client_id,
                "clientName": self.client_name,
                "clientBranch": self.client_branch,
                "clientAddress": self.client_address,
                "serviceType": self.service_type,
                "date": self.date,
                "startTime": self.start_time,
                "serviceStartTime": self.service_start_time,
                "endTime": self.end_time,
                "status": self.status,
                "createdAt": self.created_at,
                "updatedAt": self.updated_at,
                "notes": self.notes,
                "controladorName": self.controlador_name,
                "signatures": self.signatures.to_dict(),
                "devices": [d.to_dict() for d in self.devices],
            }
        )
        if self.no_service_reason is not None:
            out["noServiceReason"] = self.no_service_reason
        if self.treatment is not None:
            out["treatment"] = self.treatment
        if self.product is not None:
            out["product"] = self.product
        return out


@dataclass(frozen=True)
class OperatorIdentity:
    name: str
    role: str = "controlador"
    contact: str = ""
    signature: str = ""
    signature_type: str = ""

    @classmethod
    def from_dict(cls, raw) -> OperatorIdentity | None:
        if not isinstance(raw, dict):
            return None
        name = _str(raw.get("name")).strip()
        if not name:
            return None
        return cls(
            name=name,
            role=_str(raw.get("role"), "controlador") or "controlador",
            contact=_str(raw.get("contact") or raw.get("phone")),
            signature=_str(raw.get("signature")),
            signature_type=_str(raw.get("signatureType")),
        )


@dataclass
class StatusCount:
    name: str
    count: int = 0
    devices: list[int] = field(default_factory=list)


@dataclass
class DeviceGroup:
    """Devices of one type folded by status. Derived, never persisted."""

    type: str
    quantity: int = 0
    status: list[StatusCount] = field(default_factory=list)
    list: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "quantity": self.quantity,
            "status": [{"name": s.name, "count": s.count, "devices": list(s.devices)} for s in self.status],
            "list": [str(x) for x in self.list],
        }


@dataclass(frozen=True)
class StoredDocument:
    order_number: str
    pdf: str
    created_at: str
    client_name: str = ""
    service_type: str = ""
    client_code: str = ""
    client_branch: str = ""
    technician: str = ""

    @classmethod
    def from_dict(cls, order_number: str, raw) -> StoredDocument | None:
        if not isinstance(raw, dict) or not raw.get("pdf"):
            return None
        return cls(
            order_number=_str(raw.get("orderNumber"), order_number) or order_number,
            pdf=_str(raw.get("pdf")),
            created_at=_str(raw.get("createdAt")),
            client_name=_str(raw.get("clientName")),
            service_type=_str(raw.get("serviceType")),
            client_code=_str(raw.get("clientCode")),
            client_branch=_str(raw.get("clientBranch")),
            technician=_str(raw.get("technician")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "orderNumber": self.order_number,
            "pdf": self.pdf,
            "createdAt": self.created_at,
            "clientName": self.client_name,
            "serviceType": self.service_type,
            "clientCode": self.client_code,
            "clientBranch": self.client_branch,
            "technician": self.technician,
        }
