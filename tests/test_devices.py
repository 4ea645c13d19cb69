from __future__ import annotations

import pytest

from safeprag.core.devices import DeviceSession, compact_ranges, group_devices, status_percentage, summary_rows
from safeprag.core.errors import ValidationError
from safeprag.core.models import Device


def _dev(number: int, type_: str, status: str | None) -> Device:
    return Device(id=number, type=type_, number=number, status=status)


def test_compact_ranges_mixed_runs():
    assert compact_ranges({1, 2, 3, 5, 7, 8}) == "1-3, 5, 7-8"
    assert compact_ranges({1, 2, 3, 5, 7, 8, 10}) == "1-3, 5, 7-8, 10"


def test_compact_ranges_singleton_and_empty():
    assert compact_ranges({4}) == "4"
    assert compact_ranges([]) == ""


def test_compact_ranges_sorts_unordered_input():
    assert compact_ranges([10, 9, 1, 3, 2]) == "1-3, 9-10"


def test_group_devices_preserves_first_occurrence_order():
    devices = [
        _dev(1, "PPA", "Conforme"),
        _dev(2, "Armadilha luminosa", "Conforme"),
        _dev(3, "PPA", "Consumida"),
        _dev(4, "PPA", "Conforme"),
    ]

    groups = group_devices(devices)

    assert [g.type for g in groups] == ["PPA", "Armadilha luminosa"]
    ppa = groups[0]
    assert ppa.quantity == 3
    assert ppa.list == ["1", "3", "4"]
    assert [(s.name, s.count, s.devices) for s in ppa.status] == [
        ("Conforme", 2, [1, 4]),
        ("Consumida", 1, [3]),
    ]


def test_missing_status_groups_under_na():
    groups = group_devices([_dev(1, "PPA", None), _dev(2, "PPA", "")])
    assert [(s.name, s.count) for s in groups[0].status] == [("N/A", 2)]


def test_group_counts_add_up_to_quantity():
    statuses = ["Conforme", "Consumida", None, "Danificada", "Conforme", "Sem acesso"]
    devices = [_dev(i + 1, "PPA" if i % 2 else "PPI", s) for i, s in enumerate(statuses)]

    for group in group_devices(devices):
        assert sum(s.count for s in group.status) == group.quantity == len(group.list)


def test_status_percentage_one_decimal():
    assert status_percentage(1, 3) == "33.3"
    assert status_percentage(2, 2) == "100.0"
    assert status_percentage(0, 0) == "0.0"


def test_summary_rows_sorted_by_status_name():
    groups = group_devices([_dev(1, "PPA", "Consumida"), _dev(2, "PPA", "Conforme"), _dev(3, "PPA", "Conforme")])
    rows = summary_rows(groups[0])
    assert [r["name"] for r in rows] == ["Conforme", "Consumida"]
    assert rows[0]["ranges"] == "2-3"
    assert rows[0]["percentage"] == "66.7"


def test_session_numbers_continue_across_saves():
    session = DeviceSession()
    session.select_type("PPA")
    session.select_status("Conforme")
    session.set_quantity(3)
    session.select_all()
    first = session.save()

    session.select_type("PPI")
    session.set_quantity(2)
    session.select_all()
    second = session.save()

    assert [d.number for d in first] == [1, 2, 3]
    assert [d.number for d in second] == [4, 5]
    assert session.counter == 5


def test_session_toggle_marks_and_clears():
    session = DeviceSession()
    session.select_type("PPA")
    session.set_quantity(2)

    marked = session.toggle(1)
    assert marked.status == "Conforme"

    session.select_status("Consumida")
    assert session.toggle(1).status is None
    assert session.toggle(2).status == "Consumida"


def test_session_save_requires_every_status():
    session = DeviceSession()
    session.select_type("PPA")
    session.set_quantity(2)
    session.toggle(1)

    with pytest.raises(ValidationError, match="status de todos"):
        session.save()


def test_session_select_all_only_for_default_status():
    session = DeviceSession()
    session.select_type("PPA")
    session.set_quantity(2)
    session.select_status("Consumida")

    with pytest.raises(ValidationError):
        session.select_all()


def test_session_quantity_bounds():
    session = DeviceSession()
    session.select_type("PPA")
    with pytest.raises(ValidationError):
        session.set_quantity(2001)
    assert session.set_quantity("abc") == []


def test_summary_rows_ignore_accents_and_case():
    groups = group_devices(
        [
            _dev(1, "PPA", "Consumida"),
            _dev(2, "PPA", "Área externa"),
            _dev(3, "PPA", "danificada"),
            _dev(4, "PPA", "Sem acesso"),
        ]
    )
    assert [r["name"] for r in summary_rows(groups[0])] == ["Área externa", "Consumida", "danificada", "Sem acesso"]
