# Overview: Per-stage measurement records; one explicit constructor per stage, unknown fields rejected.

# slabworks/services/stage_measurements.py
"""
ProductionJob.measurements is a tagged union keyed by the job's stage.

Each stage has its own frozen dataclass with exactly the fields the stage
records. from_payload() is the only way in: it rejects unknown keys,
requires the stage's mandatory fields, and computes derived figures
(area, nets, coverage) through measurement_service. to_dict() is what gets
stored in the JSON column, always carrying the "stage" tag.

No defaults are invented for required fields and nothing is coerced from
strings; the caller sends numbers as numbers.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Mapping

from ..exceptions import ValidationError
from ..models.production import (
    STAGE_CUTTING,
    STAGE_GRINDING,
    STAGE_CHEMICAL_CONVERSION,
    STAGE_EPOXY,
    STAGE_POLISHING,
    STOPPAGE_NONE,
    STOPPAGE_REASONS,
)
from ..time_utils import coerce_datetime
from . import measurement_service

GRINDING_FINISHES = ("Lappato", "Normal")


# ---------------------------------------------------------------------------
# field helpers
# ---------------------------------------------------------------------------

def _check_keys(stage: str, payload: Mapping[str, Any], allowed: set[str], required: set[str]) -> None:
    if payload is None:
        payload = {}
    if not isinstance(payload, Mapping):
        raise ValidationError(f"{stage} measurements must be an object", stage=stage)
    unknown = sorted(set(payload) - allowed)
    if unknown:
        raise ValidationError(
            f"Unknown {stage} measurement fields: {', '.join(unknown)}",
            stage=stage,
            fields=unknown,
        )
    missing = sorted(k for k in required if payload.get(k) is None)
    if missing:
        raise ValidationError(
            f"Missing required {stage} measurements: {', '.join(missing)}",
            stage=stage,
            fields=missing,
        )


def _int(payload, key: str, *, minimum: int, optional: bool = False) -> int | None:
    value = payload.get(key)
    if value is None:
        if optional:
            return None
        raise ValidationError(f"{key} is required", field=key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{key} must be an integer", field=key)
    if value < minimum:
        raise ValidationError(f"{key} must be >= {minimum}", field=key)
    return value


def _number(payload, key: str, *, default: float | None = None, positive: bool = False) -> float | None:
    value = payload.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{key} must be a number", field=key)
    if positive and value <= 0:
        raise ValidationError(f"{key} must be > 0", field=key)
    if not positive and value < 0:
        raise ValidationError(f"{key} must be >= 0", field=key)
    return float(value)


def _text(payload, key: str, *, optional: bool = False) -> str | None:
    value = payload.get(key)
    if value is None:
        if optional:
            return None
        raise ValidationError(f"{key} is required", field=key)
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string", field=key)
    value = value.strip()
    if not value:
        if optional:
            return None
        raise ValidationError(f"{key} cannot be blank", field=key)
    return value


# ---------------------------------------------------------------------------
# stage variants
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CuttingMeasurements:
    stage: ClassVar[str] = STAGE_CUTTING
    fields_allowed: ClassVar[set[str]] = {"total_slabs", "brazing_number"}

    total_slabs: int
    total_area: float
    brazing_number: int | None = None

    @classmethod
    def from_payload(cls, payload, *, block, reference_area=None) -> "CuttingMeasurements":
        _check_keys(cls.stage, payload, cls.fields_allowed, {"total_slabs"})
        total_slabs = _int(payload, "total_slabs", minimum=1)
        return cls(
            total_slabs=total_slabs,
            total_area=measurement_service.slab_area(block.length, block.height, total_slabs),
            brazing_number=_int(payload, "brazing_number", minimum=0, optional=True),
        )

    def to_dict(self) -> dict:
        return {
            "stage": self.stage,
            "total_slabs": self.total_slabs,
            "total_area": self.total_area,
            "brazing_number": self.brazing_number,
        }


@dataclass(frozen=True)
class GrindingMeasurements:
    stage: ClassVar[str] = STAGE_GRINDING
    fields_allowed: ClassVar[set[str]] = {"finish", "pieces"}

    finish: str
    pieces: int

    @classmethod
    def from_payload(cls, payload, *, block=None, reference_area=None) -> "GrindingMeasurements":
        _check_keys(cls.stage, payload, cls.fields_allowed, {"finish", "pieces"})
        finish = _text(payload, "finish")
        if finish not in GRINDING_FINISHES:
            raise ValidationError(
                f"finish must be one of: {', '.join(GRINDING_FINISHES)}",
                field="finish",
            )
        return cls(finish=finish, pieces=_int(payload, "pieces", minimum=1))

    def to_dict(self) -> dict:
        return {"stage": self.stage, "finish": self.finish, "pieces": self.pieces}


@dataclass(frozen=True)
class ChemicalConversionMeasurements:
    stage: ClassVar[str] = STAGE_CHEMICAL_CONVERSION
    fields_allowed: ClassVar[set[str]] = {"chemical_name", "issue_quantity", "return_quantity"}

    chemical_name: str
    issue_quantity: float
    return_quantity: float
    net_quantity: float
    warnings: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_payload(cls, payload, *, block=None, reference_area=None) -> "ChemicalConversionMeasurements":
        _check_keys(cls.stage, payload, cls.fields_allowed, {"chemical_name"})
        issue = _number(payload, "issue_quantity", default=0.0)
        returned = _number(payload, "return_quantity", default=0.0)
        net = measurement_service.net_quantity(issue, returned)
        warnings = (f"net quantity is negative ({net})",) if net < 0 else ()
        return cls(
            chemical_name=_text(payload, "chemical_name"),
            issue_quantity=issue,
            return_quantity=returned,
            net_quantity=net,
            warnings=warnings,
        )

    def to_dict(self) -> dict:
        return {
            "stage": self.stage,
            "chemical_name": self.chemical_name,
            "issue_quantity": self.issue_quantity,
            "return_quantity": self.return_quantity,
            "net_quantity": self.net_quantity,
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class EpoxyMeasurements:
    stage: ClassVar[str] = STAGE_EPOXY
    fields_allowed: ClassVar[set[str]] = {
        "chemical_name",
        "resin_issue_quantity",
        "resin_return_quantity",
        "hardener_issue_quantity",
        "hardener_return_quantity",
        "total_area",
    }

    chemical_name: str | None
    resin_issue_quantity: float
    resin_return_quantity: float
    hardener_issue_quantity: float
    hardener_return_quantity: float
    resin_net_quantity: float
    hardener_net_quantity: float
    total_net_quantity: float
    total_area: float | None
    coverage: float | None
    warnings: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_payload(cls, payload, *, block=None, reference_area=None) -> "EpoxyMeasurements":
        _check_keys(
            cls.stage,
            payload,
            cls.fields_allowed,
            {"resin_issue_quantity", "hardener_issue_quantity"},
        )
        resin_issue = _number(payload, "resin_issue_quantity")
        resin_return = _number(payload, "resin_return_quantity", default=0.0)
        hardener_issue = _number(payload, "hardener_issue_quantity")
        hardener_return = _number(payload, "hardener_return_quantity", default=0.0)

        # Operators may correct the area; otherwise it comes from cutting
        total_area = _number(payload, "total_area")
        if total_area is None and reference_area is not None:
            total_area = float(reference_area)

        totals = measurement_service.epoxy_totals(
            resin_issue_quantity=resin_issue,
            resin_return_quantity=resin_return,
            hardener_issue_quantity=hardener_issue,
            hardener_return_quantity=hardener_return,
            total_area=total_area or 0,
        )
        return cls(
            chemical_name=_text(payload, "chemical_name", optional=True),
            resin_issue_quantity=resin_issue,
            resin_return_quantity=resin_return,
            hardener_issue_quantity=hardener_issue,
            hardener_return_quantity=hardener_return,
            resin_net_quantity=totals.resin_net_quantity,
            hardener_net_quantity=totals.hardener_net_quantity,
            total_net_quantity=totals.total_net_quantity,
            total_area=total_area,
            coverage=totals.coverage if total_area is not None else None,
            warnings=totals.warnings,
        )

    def to_dict(self) -> dict:
        return {
            "stage": self.stage,
            "chemical_name": self.chemical_name,
            "resin_issue_quantity": self.resin_issue_quantity,
            "resin_return_quantity": self.resin_return_quantity,
            "hardener_issue_quantity": self.hardener_issue_quantity,
            "hardener_return_quantity": self.hardener_return_quantity,
            "resin_net_quantity": self.resin_net_quantity,
            "hardener_net_quantity": self.hardener_net_quantity,
            "total_net_quantity": self.total_net_quantity,
            "total_area": self.total_area,
            "coverage": self.coverage,
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class PolishingMeasurements:
    stage: ClassVar[str] = STAGE_POLISHING
    fields_allowed: ClassVar[set[str]] = {
        "polish_grade",
        "surface_quality",
        "polishing_time",
        "total_slabs",
    }

    polish_grade: str
    surface_quality: str
    polishing_time: float
    total_slabs: int | None = None

    @classmethod
    def from_payload(cls, payload, *, block=None, reference_area=None) -> "PolishingMeasurements":
        _check_keys(
            cls.stage,
            payload,
            cls.fields_allowed,
            {"polish_grade", "surface_quality", "polishing_time"},
        )
        return cls(
            polish_grade=_text(payload, "polish_grade"),
            surface_quality=_text(payload, "surface_quality"),
            polishing_time=_number(payload, "polishing_time", positive=True),
            total_slabs=_int(payload, "total_slabs", minimum=1, optional=True),
        )

    def to_dict(self) -> dict:
        return {
            "stage": self.stage,
            "polish_grade": self.polish_grade,
            "surface_quality": self.surface_quality,
            "polishing_time": self.polishing_time,
            "total_slabs": self.total_slabs,
        }


MEASUREMENT_TYPES = {
    cls.stage: cls
    for cls in (
        CuttingMeasurements,
        GrindingMeasurements,
        ChemicalConversionMeasurements,
        EpoxyMeasurements,
        PolishingMeasurements,
    )
}


def build_measurements(stage: str, payload, *, block, reference_area=None):
    """Dispatch to the stage's constructor."""
    try:
        cls = MEASUREMENT_TYPES[stage]
    except KeyError:
        raise ValidationError(f"Unknown stage: {stage}", stage=stage)
    return cls.from_payload(payload or {}, block=block, reference_area=reference_area)


# ---------------------------------------------------------------------------
# stoppage sub-record
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Stoppage:
    reason: str = STOPPAGE_NONE
    start: datetime | None = None
    end: datetime | None = None
    maintenance_notes: str | None = None

    @classmethod
    def from_payload(cls, payload) -> "Stoppage":
        if payload is None:
            return cls()
        if not isinstance(payload, Mapping):
            raise ValidationError("stoppage must be an object")
        unknown = sorted(set(payload) - {"reason", "start", "end", "maintenance_notes"})
        if unknown:
            raise ValidationError(f"Unknown stoppage fields: {', '.join(unknown)}", fields=unknown)

        reason = payload.get("reason") or STOPPAGE_NONE
        if reason not in STOPPAGE_REASONS:
            raise ValidationError(
                f"stoppage reason must be one of: {', '.join(STOPPAGE_REASONS)}",
                field="reason",
            )
        try:
            start = coerce_datetime(payload.get("start"), "stoppage start")
            end = coerce_datetime(payload.get("end"), "stoppage end")
        except ValueError as e:
            raise ValidationError(str(e))

        if reason != STOPPAGE_NONE and (start is None or end is None):
            raise ValidationError(
                "stoppage start and end are required when a stoppage reason is given",
                reason=reason,
            )
        if start is not None and end is not None and end < start:
            raise ValidationError("stoppage end must not be before stoppage start")

        notes = payload.get("maintenance_notes")
        if notes is not None and not isinstance(notes, str):
            raise ValidationError("maintenance_notes must be a string")

        return cls(
            reason=reason,
            start=start,
            end=end,
            maintenance_notes=(notes or "").strip() or None,
        )
