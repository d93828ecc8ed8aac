from datetime import datetime
from decimal import Decimal

import pytest

from slabworks.services import measurement_service as ms


@pytest.mark.parametrize(
    "inches, feet",
    [
        (126, 10.0),
        (78, 6.0),
        (100, 7.75),   # 94" -> 7' + 10" -> three quarters
        (8.9, 0.0),    # 2.9" is below one quarter
        (9, 0.25),
        (18, 1.0),
        (20.99, 1.0),
        (21, 1.25),
    ],
)
def test_linear_feet_rounds_down_to_quarter_foot(inches, feet):
    assert ms.linear_feet(inches) == feet


def test_linear_feet_accepts_decimal_and_string_inputs_identically():
    assert ms.linear_feet(Decimal("126.00")) == ms.linear_feet(126) == ms.linear_feet("126")


def test_scenario_a_area():
    assert ms.linear_feet(126) == 10.0
    assert ms.linear_feet(78) == 6.0
    assert ms.slab_area(126, 78, 10) == 600.00


def test_area_is_deterministic():
    results = {ms.slab_area(Decimal("113.5"), Decimal("71.25"), 37) for _ in range(50)}
    assert len(results) == 1


def test_area_rounds_to_two_places():
    # 7.75 * 6.25 * 3 = 145.3125
    assert ms.slab_area(100, 81, 3) == 145.31


def test_linear_feet_rejects_booleans():
    with pytest.raises(TypeError):
        ms.linear_feet(True)


def test_net_quantity_may_go_negative():
    assert ms.net_quantity(5, 7.5) == -2.5
    assert ms.net_quantity(None, None) == 0.0


def test_coverage_undefined_when_nothing_consumed():
    assert ms.coverage(600, 0) is None
    assert ms.coverage(600, 24) == 25.0


def test_epoxy_totals_sum_resin_and_hardener():
    totals = ms.epoxy_totals(
        resin_issue_quantity=20,
        resin_return_quantity=4,
        hardener_issue_quantity=10,
        hardener_return_quantity=2,
        total_area=600,
    )
    assert totals.resin_net_quantity == 16.0
    assert totals.hardener_net_quantity == 8.0
    assert totals.total_net_quantity == 24.0
    assert totals.coverage == 25.0
    assert totals.warnings == ()


def test_epoxy_totals_warns_on_negative_net():
    totals = ms.epoxy_totals(
        resin_issue_quantity=2,
        resin_return_quantity=3,
        hardener_issue_quantity=1,
        hardener_return_quantity=0,
        total_area=100,
    )
    assert totals.resin_net_quantity == -1.0
    assert totals.total_net_quantity == 0.0
    assert totals.coverage is None
    assert len(totals.warnings) == 1
    assert "resin" in totals.warnings[0]


@pytest.mark.parametrize(
    "current, band",
    [(0, "nominal"), (78, "nominal"), (80, "moderate"), (138, "moderate"), (140, "high"), (178, "high"), (180, "critical"), (200, "critical")],
)
def test_occupancy_bands(current, band):
    assert ms.occupancy_band(ms.occupancy_ratio(current, 200)) == band


def test_occupancy_ratio_rounds_to_two_places():
    assert ms.occupancy_ratio(195, 200) == 0.98
    assert ms.occupancy_ratio(1, 3) == 0.33


def test_occupancy_ratio_requires_positive_capacity():
    with pytest.raises(ValueError):
        ms.occupancy_ratio(1, 0)


def test_processing_minutes():
    start = datetime(2026, 3, 2, 8, 0)
    assert ms.processing_minutes(start, datetime(2026, 3, 2, 9, 30)) == 90.0
    assert ms.processing_minutes(start, None) is None
