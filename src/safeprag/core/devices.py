from __future__ import annotations

import unicodedata
from typing import Iterable

from safeprag.core.errors import ValidationError
from safeprag.core.models import NO_STATUS, Device, DeviceGroup, StatusCount

MAX_SESSION_QUANTITY = 2000
DEFAULT_STATUS = "Conforme"


def compact_ranges(numbers: Iterable[int]) -> str:
    """Render device numbers as comma-separated consecutive runs.

    {1, 2, 3, 5, 7, 8} -> "1-3, 5, 7-8". Runs break on any gap (next != prev + 1).
    """
    nums = sorted(int(n) for n in numbers)
    if not nums:
        return ""

    parts: list[str] = []
    start = prev = nums[0]
    for n in nums[1:]:
        if n == prev + 1:
            prev = n
            continue
        parts.append(str(start) if start == prev else f"{start}-{prev}")
        start = prev = n
    parts.append(str(start) if start == prev else f"{start}-{prev}")
    return ", ".join(parts)


def status_percentage(count: int, quantity: int) -> str:
    if quantity <= 0:
        return "0.0"
    return f"{count / quantity * 100:.1f}"


def group_devices(devices: Iterable[Device]) -> list[DeviceGroup]:
    """Fold devices by type (first-occurrence order), then by status within type."""
    groups: dict[str, DeviceGroup] = {}
    for device in devices:
        group = groups.get(device.type)
        if group is None:
            group = DeviceGroup(type=device.type)
            groups[device.type] = group

        group.quantity += 1
        group.list.append(str(device.number))

        name = device.status or NO_STATUS
        bucket = next((s for s in group.status if s.name == name), None)
        if bucket is None:
            bucket = StatusCount(name=name)
            group.status.append(bucket)
        bucket.count += 1
        bucket.devices.append(device.number)

    return list(groups.values())


def _collation_key(name: str) -> tuple[str, str]:
    # Accent- and case-insensitive, like a locale-aware compare.
    folded = "".join(c for c in unicodedata.normalize("NFKD", name) if not unicodedata.combining(c))
    return folded.casefold(), name


def summary_rows(group: DeviceGroup) -> list[dict]:
    """Per-status rows for reports: name, count, percentage and compacted numbers."""
    rows = []
    for s in sorted(group.status, key=lambda s: _collation_key(s.name)):
        rows.append(
            {
                "name": s.name,
                "count": s.count,
                "percentage": status_percentage(s.count, group.quantity),
                "ranges": compact_ranges(s.devices),
            }
        )
    return rows


class DeviceSession:
    """Working set of a device-selection session.

    Numbers continue from the session counter across saves; saved batches are
    handed back to the caller to be appended to the order's saved devices.
    """

    def __init__(self, counter: int = 0):
        self.counter = int(counter)
        self.selected_type: str | None = None
        self.selected_status: str | None = None
        self.devices: list[Device] = []

    def select_type(self, device_type: str) -> None:
        self.selected_type = device_type
        self.devices = []

    def select_status(self, status: str | None) -> None:
        self.selected_status = status

    def set_quantity(self, quantity) -> list[Device]:
        try:
            qty = int(quantity)
        except (TypeError, ValueError):
            self.devices = []
            return self.devices

        if qty < 0 or qty > MAX_SESSION_QUANTITY:
            raise ValidationError(f"Quantidade deve estar entre 0 e {MAX_SESSION_QUANTITY}")

        if not self.selected_type:
            self.devices = []
            return self.devices

        self.devices = [
            Device(id=self.counter + i + 1, type=self.selected_type, number=self.counter + i + 1)
            for i in range(qty)
        ]
        return self.devices

    def toggle(self, device_id: int) -> Device | None:
        """Clear the status of a marked device, or mark it with the selected status."""
        for i, device in enumerate(self.devices):
            if device.id != device_id:
                continue
            new_status = None if device.status else (self.selected_status or DEFAULT_STATUS)
            updated = Device(id=device.id, type=device.type, number=device.number, status=new_status)
            self.devices[i] = updated
            return updated
        return None

    def select_all(self) -> None:
        if self.selected_status != DEFAULT_STATUS:
            raise ValidationError(f'Selecione o status "{DEFAULT_STATUS}" para usar esta função')
        self.devices = [
            d if d.status else Device(id=d.id, type=d.type, number=d.number, status=DEFAULT_STATUS)
            for d in self.devices
        ]

    def save(self) -> list[Device]:
        if not self.devices:
            raise ValidationError("Adicione dispositivos antes de salvar")
        if not all(d.status for d in self.devices):
            raise ValidationError("Defina o status de todos os dispositivos antes de salvar")

        saved = list(self.devices)
        self.counter = max(self.counter, max(d.number for d in saved))
        self.devices = []
        return saved
