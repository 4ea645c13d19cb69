from __future__ import annotations

import asyncio

import pytest

from fixtures_field_data import (
    CLIENT_RECORD,
    COMPANY_RECORD,
    FIXTURE_NOW,
    OPERATOR_RECORD,
    PRODUCT_RECORD,
    schedule_record,
)
from safeprag.core.clock import FixedClock
from safeprag.core.errors import DocumentGenerationError, NotFoundError, ValidationError
from safeprag.core.models import Device
from safeprag.data import storage_keys as keys
from safeprag.data.store import MemoryStore
from safeprag.orders.documents import (
    ArtifactRef,
    DocumentArchive,
    build_finalized_view,
    finalize_service_order,
    format_duration,
    render_stored_order,
)
from safeprag.orders.lifecycle import ServiceOrderManager


class RecordingGenerator:
    def __init__(self):
        self.views = []

    async def generate(self, view):
        self.views.append(view)
        return ArtifactRef(name=f"os-{view.order_number}.pdf", content=b"%PDF-1.4 fake")


class FailingGenerator:
    async def generate(self, view):
        raise RuntimeError("renderer offline")


@pytest.fixture
def clock():
    return FixedClock(FIXTURE_NOW)


@pytest.fixture
def manager(clock):
    store = MemoryStore(
        {
            keys.OPERATOR_IDENTITY: OPERATOR_RECORD,
            keys.COMPANY: COMPANY_RECORD,
            keys.CLIENTS: [CLIENT_RECORD],
            keys.PRODUCTS: [PRODUCT_RECORD],
            keys.SCHEDULES: [schedule_record("1"), schedule_record("2", service_type="pulverizacao")],
        }
    )
    return ServiceOrderManager(store, clock=clock)


@pytest.fixture
def archive(manager, clock):
    return DocumentArchive(manager.store, clock=clock)


def _start_with_devices(manager: ServiceOrderManager, clock: FixedClock) -> None:
    manager.start_service_order(manager.schedules.get("1"))
    manager.save_devices(
        "1",
        [
            Device(id=1, type="PPA", number=1, status="Conforme"),
            Device(id=2, type="PPA", number=2, status="Conforme"),
            Device(id=3, type="PPA", number=3, status="Consumida"),
        ],
    )
    manager.update_service_order("1", product={"id": PRODUCT_RECORD["id"]})
    clock.advance(minutes=42, seconds=5)


def test_format_duration():
    assert format_duration("08:05:00", "09:47:05") == "1h 42min 5s"
    assert format_duration("23:30", "00:15") == "0h 45min 0s"
    assert format_duration("", "10:00") == ""


def test_finalize_renders_and_archives(manager, archive, clock):
    _start_with_devices(manager, clock)
    generator = RecordingGenerator()

    result = asyncio.run(finalize_service_order(manager, generator, archive, "1"))

    assert result.ok
    assert result.order.status == "completed"
    view = generator.views[0]
    assert view.duration == "0h 42min 5s"
    assert view.client["code"] == CLIENT_RECORD["code"]
    assert view.client["document"] == CLIENT_RECORD["document"]
    assert view.product["name"] == PRODUCT_RECORD["name"]
    assert view.device_rows["PPA"][0] == {"name": "Conforme", "count": 2, "percentage": "66.7", "ranges": "1-2"}
    assert view.operator_name == OPERATOR_RECORD["name"]

    assert archive.has_document("1")
    assert archive.document_bytes("1") == b"%PDF-1.4 fake"
    assert archive.download_name("1") == f"ordem-servico-1-{CLIENT_RECORD['name']}.pdf"


def test_renderer_failure_keeps_order_completed(manager, archive, clock):
    _start_with_devices(manager, clock)

    result = asyncio.run(finalize_service_order(manager, FailingGenerator(), archive, "1"))

    assert not result.ok
    assert isinstance(result.document_error, DocumentGenerationError)
    assert result.document_error.order_id == "1"
    assert result.warnings
    assert manager.get_order("1").status == "completed"
    assert manager.schedules.get("1").status == "completed"
    assert not archive.has_document("1")


def test_lifecycle_error_stops_before_rendering(manager, archive):
    manager.start_service_order(manager.schedules.get("2"))
    generator = RecordingGenerator()

    with pytest.raises(ValidationError):
        asyncio.run(finalize_service_order(manager, generator, archive, "2"))
    assert generator.views == []


def test_render_stored_order_retry(manager, archive, clock):
    _start_with_devices(manager, clock)
    asyncio.run(finalize_service_order(manager, FailingGenerator(), archive, "1"))

    with pytest.raises(DocumentGenerationError):
        asyncio.run(render_stored_order(manager, FailingGenerator(), archive, "1"))

    artifact = asyncio.run(render_stored_order(manager, RecordingGenerator(), archive, "1"))
    assert artifact.name == "os-1.pdf"
    assert archive.has_document("1")


def test_client_fallbacks_to_order_and_na(manager, clock):
    manager.store.set(keys.CLIENTS, [])
    _start_with_devices(manager, clock)

    view = build_finalized_view(manager, manager.get_order("1"))

    assert view.client["name"] == CLIENT_RECORD["name"]
    assert view.client["code"] == CLIENT_RECORD["id"]
    assert view.client["contact"] == CLIENT_RECORD["contact"]
    assert view.client["document"] == "N/A"


def test_archive_prunes_old_documents(manager, archive, clock):
    _start_with_devices(manager, clock)
    asyncio.run(finalize_service_order(manager, RecordingGenerator(), archive, "1"))

    clock.advance(days=31)

    assert archive.list_documents() == []
    with pytest.raises(NotFoundError):
        archive.get_document("1")
