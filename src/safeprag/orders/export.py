from __future__ import annotations

from safeprag.data.excel_io import write_excel_bytes
from safeprag.orders.documents import DocumentArchive
from safeprag.orders.lifecycle import ServiceOrderManager

STATUS_LABELS = {
    "in_progress": "EM ANDAMENTO",
    "completed": "CONCLUÍDO",
    "approved": "APROVADO",
    "cancelled": "CANCELADO",
}
CERTIFIED_LABEL = "CERTIFICADO"

EXPORT_COLUMNS = {
    "numOS": "Nº O.S.",
    "cliente": "Cliente",
    "filial": "Filial",
    "servico": "Serviço",
    "data": "Data",
    "inicio": "Início",
    "fim": "Fim",
    "controlador": "Controlador",
    "status": "Status",
    "motivo": "Motivo não atendimento",
}


def order_rows(manager: ServiceOrderManager, archive: DocumentArchive | None = None, **filters) -> list[dict]:
    """Grid rows for the order list; an order with an archived document shows as certified."""
    rows = []
    for o in manager.search_orders(**filters):
        status = STATUS_LABELS.get(o.status, o.status)
        if archive is not None and archive.has_document(o.id):
            status = CERTIFIED_LABEL
        rows.append(
            {
                "numOS": o.id,
                "cliente": o.client_name,
                "filial": o.client_branch,
                "servico": o.service_type,
                "data": o.date,
                "inicio": o.service_start_time or o.start_time,
                "fim": o.end_time,
                "controlador": o.controlador_name,
                "status": status,
                "motivo": o.no_service_reason or "",
            }
        )
    return rows


def export_orders_xlsx(rows: list[dict]) -> bytes:
    return write_excel_bytes(rows, columns=EXPORT_COLUMNS, sheet_name="Ordens de Serviço")
