"""Service-order package.

Schedule registry, the order lifecycle manager and the bridge to the document
renderer.
"""

from safeprag.orders.documents import (
    ArtifactRef,
    DocumentArchive,
    DocumentGenerator,
    FinalizedOrderView,
    FinalizeResult,
    build_finalized_view,
    finalize_service_order,
    render_stored_order,
)
from safeprag.orders.lifecycle import ServiceOrderManager
from safeprag.orders.schedules import ScheduleRegistry

__all__ = [
    "ArtifactRef",
    "DocumentArchive",
    "DocumentGenerator",
    "FinalizedOrderView",
    "FinalizeResult",
    "ScheduleRegistry",
    "ServiceOrderManager",
    "build_finalized_view",
    "finalize_service_order",
    "render_stored_order",
]
