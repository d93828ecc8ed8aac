from datetime import datetime
from types import SimpleNamespace

import pytest

from slabworks.exceptions import ValidationError
from slabworks.services.stage_measurements import (
    ChemicalConversionMeasurements,
    CuttingMeasurements,
    EpoxyMeasurements,
    Stoppage,
    build_measurements,
)

BLOCK = SimpleNamespace(length=126, height=78)


def test_cutting_computes_area_from_block_geometry():
    record = build_measurements("cutting", {"total_slabs": 10, "brazing_number": 2}, block=BLOCK)
    assert isinstance(record, CuttingMeasurements)
    assert record.total_area == 600.0
    assert record.to_dict() == {
        "stage": "cutting",
        "total_slabs": 10,
        "total_area": 600.0,
        "brazing_number": 2,
    }


def test_cutting_rejects_client_supplied_area():
    with pytest.raises(ValidationError) as exc:
        build_measurements("cutting", {"total_slabs": 10, "total_area": 5}, block=BLOCK)
    assert exc.value.details["fields"] == ["total_area"]


def test_cutting_requires_slab_count():
    with pytest.raises(ValidationError):
        build_measurements("cutting", {}, block=BLOCK)


def test_numbers_are_not_coerced_from_strings():
    with pytest.raises(ValidationError):
        build_measurements("cutting", {"total_slabs": "10"}, block=BLOCK)


def test_grinding_finish_must_be_known():
    record = build_measurements("grinding", {"finish": "Lappato", "pieces": 12}, block=BLOCK)
    assert record.to_dict() == {"stage": "grinding", "finish": "Lappato", "pieces": 12}

    with pytest.raises(ValidationError):
        build_measurements("grinding", {"finish": "Honed", "pieces": 12}, block=BLOCK)


def test_chemical_conversion_keeps_negative_net_with_warning():
    record = build_measurements(
        "chemical_conversion",
        {"chemical_name": "Sealer X", "issue_quantity": 2, "return_quantity": 3},
        block=BLOCK,
    )
    assert isinstance(record, ChemicalConversionMeasurements)
    assert record.net_quantity == -1.0
    assert record.warnings


def test_epoxy_uses_reference_area_when_not_given():
    record = build_measurements(
        "epoxy",
        {
            "resin_issue_quantity": 20,
            "resin_return_quantity": 4,
            "hardener_issue_quantity": 10,
            "hardener_return_quantity": 2,
        },
        block=BLOCK,
        reference_area=600.0,
    )
    assert isinstance(record, EpoxyMeasurements)
    assert record.total_net_quantity == 24.0
    assert record.total_area == 600.0
    assert record.coverage == 25.0


def test_epoxy_coverage_empty_without_area_or_consumption():
    no_area = build_measurements(
        "epoxy",
        {"resin_issue_quantity": 5, "hardener_issue_quantity": 5},
        block=BLOCK,
    )
    assert no_area.total_area is None
    assert no_area.coverage is None

    nothing_used = build_measurements(
        "epoxy",
        {"resin_issue_quantity": 0, "hardener_issue_quantity": 0, "total_area": 300},
        block=BLOCK,
    )
    assert nothing_used.coverage is None


def test_polishing_requires_positive_time():
    with pytest.raises(ValidationError):
        build_measurements(
            "polishing",
            {"polish_grade": "3000", "surface_quality": "A", "polishing_time": 0},
            block=BLOCK,
        )


def test_unknown_stage_rejected():
    with pytest.raises(ValidationError):
        build_measurements("sawing", {}, block=BLOCK)


def test_stoppage_requires_window_for_real_reason():
    assert Stoppage.from_payload(None).reason == "none"

    with pytest.raises(ValidationError):
        Stoppage.from_payload({"reason": "power_outage", "start": "2026-03-02T09:00:00Z"})

    with pytest.raises(ValidationError):
        Stoppage.from_payload(
            {"reason": "maintenance", "start": "2026-03-02T10:00:00Z", "end": "2026-03-02T09:00:00Z"}
        )

    stoppage = Stoppage.from_payload(
        {
            "reason": "maintenance",
            "start": "2026-03-02T09:00:00Z",
            "end": "2026-03-02T09:45:00Z",
            "maintenance_notes": "blade change",
        }
    )
    assert stoppage.start == datetime(2026, 3, 2, 9, 0)
    assert stoppage.maintenance_notes == "blade change"


def test_stoppage_reason_must_be_known():
    with pytest.raises(ValidationError):
        Stoppage.from_payload({"reason": "lunch"})


def test_stoppage_window_checked_without_reason():
    with pytest.raises(ValidationError):
        Stoppage.from_payload(
            {"reason": "none", "start": "2026-03-02T10:00:00Z", "end": "2026-03-02T09:00:00Z"}
        )

    stoppage = Stoppage.from_payload({"start": "2026-03-02T09:00:00Z"})
    assert stoppage.reason == "none"
    assert stoppage.start == datetime(2026, 3, 2, 9, 0)
    assert stoppage.end is None
