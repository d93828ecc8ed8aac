# Overview: Pure measurement arithmetic shared by the pipeline and inventory services.

# slabworks/services/measurement_service.py
"""
Slab geometry and chemical usage arithmetic (authoritative)

Linear footage:
- A raw dimension in inches loses a fixed 6" kerf/trim allowance, is converted
  to feet and rounded DOWN to the nearest quarter foot:
      floor((d - 6) / 12) + floor(((d - 6) mod 12) / 3) * 0.25
  mod keeps the sign of the dividend, matching the billing sheets.
- Arithmetic is done in Decimal so identical inputs always produce identical
  quarter-foot results regardless of float representation.

Area:
- linear_feet(length) * linear_feet(height) * slab_count, 2 decimal places
  (half-up).

Chemical usage:
- net = issue - return, resin and hardener independently. Negative nets are
  returned as-is and reported through warnings, never clamped.
- coverage = total_area / total_net; None when total_net is 0.

Everything here is side-effect free; no session or app context is needed.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_FLOOR, ROUND_HALF_UP

KERF_ALLOWANCE_INCHES = Decimal(6)
INCHES_PER_FOOT = Decimal(12)
QUARTER_FOOT_INCHES = Decimal(3)
QUARTER_FOOT = Decimal("0.25")
TWO_PLACES = Decimal("0.01")

OCCUPANCY_BANDS = (
    (Decimal("0.40"), "nominal"),
    (Decimal("0.70"), "moderate"),
    (Decimal("0.90"), "high"),
)
OCCUPANCY_BAND_CRITICAL = "critical"


def _dec(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("boolean is not a measurement")
    return Decimal(str(value))


def _round2(value: Decimal) -> float:
    return float(value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP))


def linear_feet(dimension_inches) -> float:
    """Billable feet for one raw dimension, in quarter-foot steps."""
    trimmed = _dec(dimension_inches) - KERF_ALLOWANCE_INCHES
    whole_feet = (trimmed / INCHES_PER_FOOT).to_integral_value(rounding=ROUND_FLOOR)
    remainder = trimmed % INCHES_PER_FOOT
    quarters = (remainder / QUARTER_FOOT_INCHES).to_integral_value(rounding=ROUND_FLOOR)
    return float(whole_feet + quarters * QUARTER_FOOT)


def slab_area(length_inches, height_inches, slab_count) -> float:
    """Square feet covered by slab_count slabs cut from a block face."""
    length_ft = _dec(linear_feet(length_inches))
    height_ft = _dec(linear_feet(height_inches))
    return _round2(length_ft * height_ft * _dec(slab_count))


def net_quantity(issue_quantity, return_quantity) -> float:
    return float(_dec(issue_quantity or 0) - _dec(return_quantity or 0))


def coverage(total_area, total_net_quantity) -> float | None:
    """Area per unit of chemical; None when nothing was consumed."""
    net = _dec(total_net_quantity or 0)
    if net == 0:
        return None
    return _round2(_dec(total_area or 0) / net)


@dataclass(frozen=True)
class EpoxyTotals:
    resin_net_quantity: float
    hardener_net_quantity: float
    total_net_quantity: float
    coverage: float | None
    warnings: tuple[str, ...] = field(default_factory=tuple)


def epoxy_totals(
    *,
    resin_issue_quantity,
    resin_return_quantity,
    hardener_issue_quantity,
    hardener_return_quantity,
    total_area,
) -> EpoxyTotals:
    resin_net = net_quantity(resin_issue_quantity, resin_return_quantity)
    hardener_net = net_quantity(hardener_issue_quantity, hardener_return_quantity)
    total_net = float(_dec(resin_net) + _dec(hardener_net))

    warnings = []
    if resin_net < 0:
        warnings.append(f"resin net quantity is negative ({resin_net})")
    if hardener_net < 0:
        warnings.append(f"hardener net quantity is negative ({hardener_net})")

    return EpoxyTotals(
        resin_net_quantity=resin_net,
        hardener_net_quantity=hardener_net,
        total_net_quantity=total_net,
        coverage=coverage(total_area, total_net),
        warnings=tuple(warnings),
    )


def occupancy_ratio(current_slabs: int, max_capacity: int) -> float:
    if max_capacity <= 0:
        raise ValueError("max_capacity must be positive")
    return _round2(_dec(current_slabs) / _dec(max_capacity))


def occupancy_band(ratio) -> str:
    """Advisory colour band for a stand's occupancy ratio."""
    value = _dec(ratio)
    for upper, band in OCCUPANCY_BANDS:
        if value < upper:
            return band
    return OCCUPANCY_BAND_CRITICAL


def processing_minutes(start: datetime | None, end: datetime | None) -> float | None:
    if start is None or end is None:
        return None
    return (end - start).total_seconds() / 60.0
