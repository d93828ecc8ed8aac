# Overview: Read-only production dashboards; per-stage analytics and headline counts.

# slabworks/services/reporting_service.py
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func

from ..extensions import db
from ..models import Block, ProductionJob
from ..models.production import JOB_STATUS_COMPLETED, JOB_STATUS_IN_PROGRESS, STAGES
from .measurement_service import processing_minutes


def _half_up(value: float, places: str = "1") -> float:
    return float(Decimal(str(value)).quantize(Decimal(places), rounding=ROUND_HALF_UP))


def _stage_analytics(stage: str, jobs: list[ProductionJob]) -> dict:
    total = len(jobs)
    completed = [j for j in jobs if j.status == JOB_STATUS_COMPLETED]
    in_progress = sum(1 for j in jobs if j.status == JOB_STATUS_IN_PROGRESS)

    durations = [
        processing_minutes(j.start_time, j.end_time)
        for j in completed
        if j.start_time is not None and j.end_time is not None
    ]
    average = sum(durations) / len(durations) if durations else 0.0

    total_slabs = 0
    for job in jobs:
        slabs = (job.measurements or {}).get("total_slabs")
        if isinstance(slabs, int) and not isinstance(slabs, bool):
            total_slabs += slabs

    rate = (len(completed) / total * 100) if total else 0.0
    return {
        "stage": stage,
        "total_jobs": total,
        "completed_jobs": len(completed),
        "in_progress_jobs": in_progress,
        "completion_rate": _half_up(rate, "0.01"),
        "average_processing_minutes": int(_half_up(average)),
        "total_slabs": total_slabs,
    }


def production_analytics() -> dict:
    """Per-stage throughput plus an overall summary."""
    by_stage: dict[str, list[ProductionJob]] = {stage: [] for stage in STAGES}
    for job in ProductionJob.query.all():
        by_stage.setdefault(job.stage, []).append(job)

    stages = [_stage_analytics(stage, by_stage[stage]) for stage in STAGES]
    summary = {
        "total_active_jobs": sum(s["in_progress_jobs"] for s in stages),
        "total_completed_jobs": sum(s["completed_jobs"] for s in stages),
        "overall_completion_rate": _half_up(
            sum(s["completion_rate"] for s in stages) / len(stages), "0.01"
        ),
        "total_slabs": sum(s["total_slabs"] for s in stages),
    }
    return {"stages": stages, "summary": summary}


def production_stats() -> dict:
    raw_materials = db.session.query(func.count(Block.id)).scalar() or 0
    active_jobs = (
        db.session.query(func.count(ProductionJob.id))
        .filter(ProductionJob.status == JOB_STATUS_IN_PROGRESS)
        .scalar()
        or 0
    )
    counts = dict(
        db.session.query(ProductionJob.stage, func.count(ProductionJob.id))
        .group_by(ProductionJob.stage)
        .all()
    )
    return {
        "raw_materials": raw_materials,
        "active_jobs": active_jobs,
        "jobs_by_stage": {stage: int(counts.get(stage, 0)) for stage in STAGES},
    }
