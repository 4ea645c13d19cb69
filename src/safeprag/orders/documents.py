"""Bridge to the document renderer (service-order PDF / certificate).

Rendering itself lives outside this package; here we assemble what the
renderer consumes, run it, and keep the archive of generated documents.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from safeprag.core.clock import Clock, SystemClock, age_in_days, iso_now
from safeprag.core.devices import group_devices, summary_rows
from safeprag.core.errors import DocumentGenerationError, NotFoundError
from safeprag.core.models import DeviceGroup, ServiceOrder, StoredDocument
from safeprag.data import storage_keys as keys
from safeprag.data.catalogs import Catalogs
from safeprag.data.store import JsonStore
from safeprag.orders.lifecycle import ServiceOrderManager

logger = logging.getLogger(__name__)

NOT_AVAILABLE = "N/A"


@dataclass(frozen=True)
class ArtifactRef:
    """Opaque reference to a rendered document (bytes kept by the caller)."""

    name: str
    content: bytes
    media_type: str = "application/pdf"


@dataclass
class FinalizedOrderView:
    order: ServiceOrder
    order_number: str
    devices: list[DeviceGroup]
    device_rows: dict[str, list[dict]]
    client: dict[str, str]
    company: dict[str, Any]
    product: dict[str, Any] | None
    signatures: dict[str, Any]
    duration: str
    operator_name: str = ""


class DocumentGenerator(Protocol):
    async def generate(self, view: FinalizedOrderView) -> ArtifactRef: ...


@dataclass
class FinalizeResult:
    order: ServiceOrder
    artifact: ArtifactRef | None = None
    document_error: DocumentGenerationError | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.document_error is None


def format_duration(start_time: str, end_time: str) -> str:
    """``"Hh Mmin Ss"`` between two HH:MM[:SS] times; wraps past midnight."""
    if not start_time or not end_time:
        return ""

    def _seconds(value: str) -> int:
        parts = [int(p) for p in value.split(":")]
        while len(parts) < 3:
            parts.append(0)
        h, m, s = parts[:3]
        return h * 3600 + m * 60 + s

    try:
        diff = _seconds(end_time) - _seconds(start_time)
    except ValueError:
        logger.warning("Horário inválido para duração: %r - %r", start_time, end_time)
        return ""
    if diff < 0:
        diff += 24 * 3600
    return f"{diff // 3600}h {(diff % 3600) // 60}min {diff % 60}s"


def resolve_client(order: ServiceOrder, catalogs: Catalogs, schedule=None) -> dict[str, str]:
    """Client data for the document: roster first, then schedule fields, then ``N/A``."""
    client = catalogs.client(order.client_id) or {}
    sched = schedule.to_dict() if schedule is not None else {}

    def pick(*values) -> str:
        for v in values:
            if v:
                return str(v)
        return NOT_AVAILABLE

    return {
        "code": pick(client.get("code"), order.client_id),
        "name": pick(client.get("name"), order.client_name, sched.get("clientName")),
        "branch": pick(client.get("branch"), order.client_branch, sched.get("clientBranch"), client.get("name")),
        "document": pick(client.get("document"), sched.get("clientDocument")),
        "address": pick(client.get("address"), order.client_address, sched.get("clientAddress")),
        "contact": pick(client.get("contact"), sched.get("clientContact")),
        "phone": pick(client.get("phone"), sched.get("clientPhone")),
        "email": pick(client.get("email"), sched.get("clientEmail")),
    }


def build_finalized_view(manager: ServiceOrderManager, order: ServiceOrder) -> FinalizedOrderView:
    catalogs = manager.catalogs
    groups = group_devices(order.devices)
    operator = catalogs.operator()

    product = order.product
    if isinstance(product, dict) and product.get("id") and len(product) == 1:
        product = catalogs.product(product["id"]) or product

    return FinalizedOrderView(
        order=order,
        order_number=order.id,
        devices=groups,
        device_rows={g.type: summary_rows(g) for g in groups},
        client=resolve_client(order, catalogs, manager.schedules.get(order.schedule_id)),
        company=catalogs.company(),
        product=product,
        signatures={
            "order": order.signatures.to_dict(),
            "client": catalogs.client_signature(),
            "supervisor": catalogs.supervisor_signature(),
            "technician": operator.signature if operator else "",
        },
        duration=format_duration(order.service_start_time or order.start_time, order.end_time),
        operator_name=order.controlador_name or (operator.name if operator else ""),
    )


class DocumentArchive:
    """Generated documents keyed by order number, pruned by age."""

    def __init__(self, store: JsonStore, *, clock: Clock | None = None, max_age_days: int = 30):
        self.store = store
        self.clock = clock or SystemClock()
        self.max_age_days = max_age_days

    def cleanup(self) -> int:
        stored = self.store.get_dict(keys.SERVICE_ORDER_DOCUMENTS)
        valid = {}
        for number, record in stored.items():
            age = age_in_days(record.get("createdAt") if isinstance(record, dict) else None, self.clock)
            if age is not None and age <= self.max_age_days:
                valid[number] = record
        removed = len(stored) - len(valid)
        if removed:
            self.store.set(keys.SERVICE_ORDER_DOCUMENTS, valid)
            logger.info("Removidos %d documentos antigos", removed)
        return removed

    def store_document(self, artifact: ArtifactRef, view: FinalizedOrderView) -> StoredDocument:
        self.cleanup()
        doc = StoredDocument(
            order_number=view.order_number,
            pdf=base64.b64encode(artifact.content).decode("ascii"),
            created_at=iso_now(self.clock),
            client_name=view.client.get("name", ""),
            service_type=view.order.service_type,
            client_code=view.client.get("code", ""),
            client_branch=view.client.get("branch", ""),
            technician=view.operator_name,
        )
        stored = self.store.get_dict(keys.SERVICE_ORDER_DOCUMENTS)
        stored[doc.order_number] = doc.to_dict()
        self.store.set(keys.SERVICE_ORDER_DOCUMENTS, stored)
        return doc

    def list_documents(self) -> list[StoredDocument]:
        self.cleanup()
        stored = self.store.get_dict(keys.SERVICE_ORDER_DOCUMENTS)
        docs = [StoredDocument.from_dict(number, record) for number, record in stored.items()]
        return [d for d in docs if d is not None]

    def has_document(self, order_number: str) -> bool:
        return str(order_number) in self.store.get_dict(keys.SERVICE_ORDER_DOCUMENTS)

    def get_document(self, order_number: str) -> StoredDocument:
        stored = self.store.get_dict(keys.SERVICE_ORDER_DOCUMENTS)
        doc = StoredDocument.from_dict(str(order_number), stored.get(str(order_number)))
        if doc is None:
            raise NotFoundError(f"PDF não encontrado para a ordem de serviço {order_number}")
        return doc

    def document_bytes(self, order_number: str) -> bytes:
        return base64.b64decode(self.get_document(order_number).pdf)

    def download_name(self, order_number: str) -> str:
        doc = self.get_document(order_number)
        return f"ordem-servico-{doc.order_number}-{doc.client_name}.pdf"


async def finalize_service_order(
    manager: ServiceOrderManager,
    generator: DocumentGenerator,
    archive: DocumentArchive,
    order_id: str,
) -> FinalizeResult:
    """Finish the order, then render and archive its document.

    Lifecycle errors propagate before anything is rendered. A renderer failure
    is reported in the result and leaves the order completed.
    """
    order = manager.finish_service_order(order_id)
    view = build_finalized_view(manager, order)

    try:
        artifact = await generator.generate(view)
    except Exception as exc:
        logger.exception("Erro ao gerar documento da ordem %s", order.id)
        error = DocumentGenerationError(f"Erro ao gerar o PDF da ordem {order.id}: {exc}", order_id=order.id)
        return FinalizeResult(
            order=order,
            document_error=error,
            warnings=["Ordem finalizada, mas o documento não foi gerado."],
        )

    archive.store_document(artifact, view)
    return FinalizeResult(order=order, artifact=artifact)


async def render_stored_order(
    manager: ServiceOrderManager,
    generator: DocumentGenerator,
    archive: DocumentArchive,
    order_id: str,
) -> ArtifactRef:
    """Re-render an already finished order from stored data (the retry path)."""
    order = manager.get_order(order_id)
    view = build_finalized_view(manager, order)
    try:
        artifact = await generator.generate(view)
    except Exception as exc:
        raise DocumentGenerationError(f"Erro ao gerar o PDF da ordem {order.id}: {exc}", order_id=order.id) from exc
    archive.store_document(artifact, view)
    return artifact
