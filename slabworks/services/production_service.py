# Overview: Service-layer operations for the stage pipeline; eligibility, job lifecycle, and validation.

# slabworks/services/production_service.py
"""
Stage Pipeline Invariants (authoritative)

Stage order (fixed):
    cutting -> grinding -> chemical_conversion -> epoxy -> polishing

Job lifecycle:
- pending     -> in_progress (begin) | skipped | cancelled
- in_progress -> completed | failed | cancelled | paused
- paused      -> in_progress (resume) | failed | cancelled
- completed, failed, cancelled, skipped are terminal and never edited again
  (notes/photos aside). Retrying a stage creates a new row.

Eligibility of block B for stage S:
1. No open (pending/in_progress/paused) job exists for (B, S).
2. S == cutting, or the MOST RECENT job for (B, previous stage) is completed
   or skipped. Recency is start_time (created_at for jobs that never
   started, e.g. skipped ones), ties broken by the later row id.

Single writer per (block, stage):
- Job creation locks the block row and re-checks rule 1 inside the same
  transaction; the partial unique index on open jobs catches anything that
  slips past a store without row locks.

Completion rules:
- end_time is required and must not precede start_time.
- Stage measurements go through stage_measurements.build_measurements.
- A stoppage with reason != none needs both its start and end.

Skip rules:
- Only a pending job can be skipped; a non-blank comment is mandatory.
- Times, measurements, machine and trolley are cleared.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..exceptions import ConflictError, EligibilityError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Block, Machine, ProductionJob, Trolley
from ..models.blocks import BLOCK_STATUS_COMPLETED, BLOCK_STATUS_PROCESSING
from ..models.production import (
    JOB_STATUS_CANCELLED,
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
    JOB_STATUS_IN_PROGRESS,
    JOB_STATUS_PAUSED,
    JOB_STATUS_PENDING,
    JOB_STATUS_SKIPPED,
    MACHINE_STAGES,
    OPEN_JOB_STATUSES,
    PASSED_JOB_STATUSES,
    STAGE_CUTTING,
    STAGE_EPOXY,
    STAGE_POLISHING,
    STAGES,
    STOPPAGE_NONE,
    TERMINAL_JOB_STATUSES,
    previous_stage,
)
from ..time_utils import coerce_datetime, utcnow
from .block_service import get_block, set_block_status
from .concurrency import lock_for_update, run_with_retry
from .stage_measurements import Stoppage, build_measurements

logger = logging.getLogger(__name__)

JOB_STATUSES = OPEN_JOB_STATUSES + TERMINAL_JOB_STATUSES

ALLOWED_TRANSITIONS = {
    JOB_STATUS_PENDING: {JOB_STATUS_IN_PROGRESS, JOB_STATUS_SKIPPED, JOB_STATUS_CANCELLED},
    JOB_STATUS_IN_PROGRESS: {
        JOB_STATUS_COMPLETED,
        JOB_STATUS_FAILED,
        JOB_STATUS_CANCELLED,
        JOB_STATUS_PAUSED,
    },
    JOB_STATUS_PAUSED: {JOB_STATUS_IN_PROGRESS, JOB_STATUS_FAILED, JOB_STATUS_CANCELLED},
    # terminal rows never move again
    **{status: set() for status in TERMINAL_JOB_STATUSES},
}

# Clock skew tolerance for operator-entered times
FUTURE_TOLERANCE = timedelta(minutes=2)


@dataclass(frozen=True)
class Eligibility:
    block_id: int
    stage: str
    eligible: bool
    reason: str | None = None
    open_job_id: int | None = None
    previous_job_id: int | None = None
    previous_job_status: str | None = None

    def to_dict(self) -> dict:
        return {
            "block_id": self.block_id,
            "stage": self.stage,
            "eligible": self.eligible,
            "reason": self.reason,
            "open_job_id": self.open_job_id,
            "previous_job_id": self.previous_job_id,
            "previous_job_status": self.previous_job_status,
        }


# ---------------------------------------------------------------------------
# lookups
# ---------------------------------------------------------------------------

def _require_stage(stage: str) -> str:
    if stage not in STAGES:
        raise ValidationError(f"Unknown stage: {stage}", stage=stage, stages=list(STAGES))
    return stage


def _recency():
    return (
        func.coalesce(ProductionJob.start_time, ProductionJob.created_at).desc(),
        ProductionJob.id.desc(),
    )


def get_job(job_id: int, *, lock: bool = False) -> ProductionJob:
    query = db.session.query(ProductionJob).filter_by(id=job_id)
    if lock:
        query = lock_for_update(query)
    job = query.first()
    if job is None:
        raise NotFoundError("ProductionJob", job_id)
    return job


def list_jobs(
    *,
    stage: str | None = None,
    status: str | None = None,
    block_id: int | None = None,
    limit: int = 500,
) -> list[ProductionJob]:
    q = ProductionJob.query
    if stage is not None:
        q = q.filter(ProductionJob.stage == _require_stage(stage))
    if status is not None:
        if status not in JOB_STATUSES:
            raise ValidationError(f"Unknown job status: {status}")
        q = q.filter(ProductionJob.status == status)
    if block_id is not None:
        q = q.filter(ProductionJob.block_id == block_id)
    return q.order_by(*_recency()).limit(limit).all()


def find_open_job(block_id: int, stage: str) -> ProductionJob | None:
    return (
        ProductionJob.query.filter(
            ProductionJob.block_id == block_id,
            ProductionJob.stage == stage,
            ProductionJob.status.in_(OPEN_JOB_STATUSES),
        )
        .order_by(ProductionJob.id.desc())
        .first()
    )


def latest_job(block_id: int, stage: str) -> ProductionJob | None:
    """Most recent attempt at a stage, by start time."""
    return (
        ProductionJob.query.filter(
            ProductionJob.block_id == block_id,
            ProductionJob.stage == stage,
        )
        .order_by(*_recency())
        .first()
    )


def list_machines(machine_type: str | None = None) -> list[Machine]:
    q = Machine.query
    if machine_type is not None:
        q = q.filter(Machine.machine_type == machine_type)
    return q.order_by(Machine.name).all()


def list_trolleys() -> list[Trolley]:
    return Trolley.query.order_by(Trolley.number).all()


def register_machine(*, name: str, machine_type: str) -> Machine:
    if machine_type not in MACHINE_STAGES:
        raise ValidationError(
            f"machine_type must be one of: {', '.join(sorted(MACHINE_STAGES))}",
            field="machine_type",
        )

    def _op():
        if Machine.query.filter_by(name=name).first() is not None:
            raise ConflictError(f"Machine {name} already exists", name=name)
        machine = Machine(name=name, machine_type=machine_type)
        db.session.add(machine)
        db.session.commit()
        return machine

    return run_with_retry(_op)


def register_trolley(*, number: str) -> Trolley:
    def _op():
        if Trolley.query.filter_by(number=number).first() is not None:
            raise ConflictError(f"Trolley {number} already exists", number=number)
        trolley = Trolley(number=number)
        db.session.add(trolley)
        db.session.commit()
        return trolley

    return run_with_retry(_op)


# ---------------------------------------------------------------------------
# eligibility
# ---------------------------------------------------------------------------

def check_eligibility(block_id: int, stage: str) -> Eligibility:
    """Evaluate both eligibility rules for one block without raising."""
    _require_stage(stage)
    get_block(block_id)

    open_job = find_open_job(block_id, stage)
    if open_job is not None:
        return Eligibility(
            block_id=block_id,
            stage=stage,
            eligible=False,
            reason=f"{stage} job {open_job.id} is already {open_job.status}",
            open_job_id=open_job.id,
        )

    prev = previous_stage(stage)
    if prev is None:
        return Eligibility(block_id=block_id, stage=stage, eligible=True)

    prior = latest_job(block_id, prev)
    if prior is None:
        return Eligibility(
            block_id=block_id,
            stage=stage,
            eligible=False,
            reason=f"{prev} has not been started",
        )
    if prior.status not in PASSED_JOB_STATUSES:
        return Eligibility(
            block_id=block_id,
            stage=stage,
            eligible=False,
            reason=f"latest {prev} job {prior.id} is {prior.status}",
            previous_job_id=prior.id,
            previous_job_status=prior.status,
        )
    return Eligibility(
        block_id=block_id,
        stage=stage,
        eligible=True,
        previous_job_id=prior.id,
        previous_job_status=prior.status,
    )


def get_eligible_blocks(stage: str) -> list[Block]:
    """All blocks that may start `stage` right now."""
    _require_stage(stage)

    open_ids = {
        block_id
        for (block_id,) in db.session.query(ProductionJob.block_id).filter(
            ProductionJob.stage == stage,
            ProductionJob.status.in_(OPEN_JOB_STATUSES),
        )
    }

    prev = previous_stage(stage)
    if prev is None:
        q = Block.query
        if open_ids:
            q = q.filter(~Block.id.in_(open_ids))
        return q.order_by(Block.block_number).all()

    rows = db.session.query(
        ProductionJob.id,
        ProductionJob.block_id,
        ProductionJob.status,
        ProductionJob.start_time,
        ProductionJob.created_at,
    ).filter(ProductionJob.stage == prev)

    latest: dict[int, tuple] = {}
    for row in rows:
        key = (row.start_time or row.created_at, row.id)
        current = latest.get(row.block_id)
        if current is None or key > current[0]:
            latest[row.block_id] = (key, row.status)

    passed = {
        block_id
        for block_id, (_, status) in latest.items()
        if status in PASSED_JOB_STATUSES
    }
    eligible_ids = passed - open_ids
    if not eligible_ids:
        return []
    return Block.query.filter(Block.id.in_(eligible_ids)).order_by(Block.block_number).all()


def _assert_can_enter(block: Block, stage: str) -> None:
    verdict = check_eligibility(block.id, stage)
    if verdict.eligible:
        return
    if verdict.open_job_id is not None:
        raise ConflictError(
            f"Block {block.block_number} already has an open {stage} job",
            block_id=block.id,
            stage=stage,
            open_job_id=verdict.open_job_id,
        )
    raise EligibilityError(
        f"Block {block.block_number} is not eligible for {stage}: {verdict.reason}",
        block_id=block.id,
        stage=stage,
        previous_stage=previous_stage(stage),
        previous_job_id=verdict.previous_job_id,
        previous_job_status=verdict.previous_job_status,
    )


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------

def _parse_time(value, field: str, *, default_now: bool = False):
    try:
        dt = coerce_datetime(value, field)
    except ValueError as e:
        raise ValidationError(str(e), field=field)
    if dt is None:
        return utcnow() if default_now else None
    if dt > utcnow() + FUTURE_TOLERANCE:
        raise ValidationError(f"{field} cannot be in the future", field=field)
    return dt


def _resolve_machine(stage: str, machine_id: int | None) -> Machine | None:
    if machine_id is None:
        if stage in MACHINE_STAGES:
            raise ValidationError(f"machine_id is required for {stage}", field="machine_id")
        return None
    machine = db.session.get(Machine, machine_id)
    if machine is None:
        raise NotFoundError("Machine", machine_id)
    if machine.machine_type != stage:
        raise ValidationError(
            f"Machine {machine.name} is a {machine.machine_type} machine, not {stage}",
            field="machine_id",
        )
    return machine


def _resolve_trolley(trolley_id: int | None) -> Trolley | None:
    if trolley_id is None:
        return None
    trolley = db.session.get(Trolley, trolley_id)
    if trolley is None:
        raise NotFoundError("Trolley", trolley_id)
    return trolley


def _transition(job: ProductionJob, target: str) -> None:
    allowed = ALLOWED_TRANSITIONS.get(job.status, set())
    if target not in allowed:
        raise ValidationError(
            f"Cannot move {job.stage} job {job.id} from {job.status} to {target}",
            job_id=job.id,
            current_status=job.status,
            requested_status=target,
        )
    job.status = target


def _optional_text(value, field: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", field=field)
    return value.strip()


def _clean_photos(photos) -> list[str]:
    if photos is None:
        return []
    if not isinstance(photos, (list, tuple)) or not all(isinstance(p, str) for p in photos):
        raise ValidationError("photos must be a list of reference strings", field="photos")
    return [p.strip() for p in photos if p.strip()]


def _mark_block_after(job: ProductionJob) -> None:
    if job.stage == STAGE_POLISHING and job.status in PASSED_JOB_STATUSES:
        set_block_status(job.block, BLOCK_STATUS_COMPLETED)


def _create_job_inner(
    *,
    block_id: int,
    stage: str,
    status: str,
    start_time=None,
    machine: Machine | None = None,
    trolley: Trolley | None = None,
    operator_notes: str | None = None,
    photos: list[str] | None = None,
) -> ProductionJob:
    """Eligibility check + insert. Caller owns the transaction."""
    block = get_block(block_id, lock=True)
    _assert_can_enter(block, stage)

    job = ProductionJob(
        block_id=block.id,
        stage=stage,
        status=status,
        start_time=start_time,
        machine_id=machine.id if machine else None,
        trolley_id=trolley.id if trolley else None,
        operator_notes=operator_notes,
        photos=photos or [],
    )
    db.session.add(job)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(
            f"Block {block_id} already has an open {stage} job",
            block_id=block_id,
            stage=stage,
        )

    if status == JOB_STATUS_IN_PROGRESS:
        set_block_status(block, BLOCK_STATUS_PROCESSING)
        if trolley is not None:
            trolley.current_block_id = block.id
    return job


# ---------------------------------------------------------------------------
# lifecycle operations
# ---------------------------------------------------------------------------

def start_job(
    *,
    block_id: int,
    stage: str,
    machine_id: int | None = None,
    trolley_id: int | None = None,
    start_time=None,
    operator_notes: str | None = None,
    photos=None,
) -> ProductionJob:
    """
    Open an in_progress job for (block, stage).

    Raises:
        ConflictError: an open job already exists for the pair
        EligibilityError: the previous stage has not been passed
        NotFoundError: unknown block, machine or trolley
        ValidationError: bad stage, machine mismatch, future start time
    """
    _require_stage(stage)
    start_dt = _parse_time(start_time, "start_time", default_now=True)
    photo_refs = _clean_photos(photos)

    def _op():
        machine = _resolve_machine(stage, machine_id)
        trolley = _resolve_trolley(trolley_id)
        job = _create_job_inner(
            block_id=block_id,
            stage=stage,
            status=JOB_STATUS_IN_PROGRESS,
            start_time=start_dt,
            machine=machine,
            trolley=trolley,
            operator_notes=operator_notes,
            photos=photo_refs,
        )
        db.session.commit()
        logger.info("Started %s job %s for block %s", stage, job.id, block_id)
        return job

    return run_with_retry(_op)


def queue_job(
    *,
    block_id: int,
    stage: str,
    operator_notes: str | None = None,
) -> ProductionJob:
    """Reserve the (block, stage) slot with a pending job."""
    _require_stage(stage)

    def _op():
        job = _create_job_inner(
            block_id=block_id,
            stage=stage,
            status=JOB_STATUS_PENDING,
            operator_notes=operator_notes,
        )
        db.session.commit()
        return job

    return run_with_retry(_op)


def begin_job(
    job_id: int,
    *,
    start_time=None,
    machine_id: int | None = None,
    trolley_id: int | None = None,
) -> ProductionJob:
    """pending -> in_progress."""
    start_dt = _parse_time(start_time, "start_time", default_now=True)

    def _op():
        job = get_job(job_id, lock=True)
        machine = _resolve_machine(job.stage, machine_id if machine_id is not None else job.machine_id)
        trolley = _resolve_trolley(trolley_id if trolley_id is not None else job.trolley_id)
        _transition(job, JOB_STATUS_IN_PROGRESS)
        job.start_time = start_dt
        job.machine_id = machine.id if machine else None
        job.trolley_id = trolley.id if trolley else None
        set_block_status(job.block, BLOCK_STATUS_PROCESSING)
        if trolley is not None:
            trolley.current_block_id = job.block_id
        db.session.commit()
        return job

    return run_with_retry(_op)


def _reference_area(block_id: int) -> float | None:
    """Area recorded by the block's most recent completed cutting job."""
    cutting = (
        ProductionJob.query.filter(
            ProductionJob.block_id == block_id,
            ProductionJob.stage == STAGE_CUTTING,
            ProductionJob.status == JOB_STATUS_COMPLETED,
        )
        .order_by(*_recency())
        .first()
    )
    if cutting is None or not cutting.measurements:
        return None
    return cutting.measurements.get("total_area")


def complete_job(
    job_id: int,
    *,
    end_time=None,
    measurements=None,
    stoppage=None,
    comments: str | None = None,
    operator_notes: str | None = None,
) -> ProductionJob:
    """
    in_progress -> completed, after validating times, measurements and stoppage.

    Nothing is written when validation fails; the job stays in_progress.
    """
    end_dt = _parse_time(end_time, "end_time")
    if end_dt is None:
        raise ValidationError("end_time is required to complete a job", job_id=job_id, field="end_time")
    stoppage_record = Stoppage.from_payload(stoppage)
    comments = _optional_text(comments, "comments")
    operator_notes = _optional_text(operator_notes, "operator_notes")

    def _op():
        job = get_job(job_id, lock=True)
        if job.status != JOB_STATUS_IN_PROGRESS:
            raise ValidationError(
                f"Cannot complete {job.stage} job {job.id} in {job.status} status",
                job_id=job.id,
                current_status=job.status,
            )
        if job.start_time is not None and end_dt < job.start_time:
            raise ValidationError(
                "end_time must not be before start_time",
                job_id=job.id,
                field="end_time",
            )

        reference_area = _reference_area(job.block_id) if job.stage == STAGE_EPOXY else None
        record = build_measurements(
            job.stage,
            measurements,
            block=job.block,
            reference_area=reference_area,
        )

        _transition(job, JOB_STATUS_COMPLETED)
        job.end_time = end_dt
        job.measurements = record.to_dict()
        job.stoppage_reason = stoppage_record.reason
        job.stoppage_start = stoppage_record.start
        job.stoppage_end = stoppage_record.end
        job.maintenance_notes = stoppage_record.maintenance_notes
        if comments is not None:
            job.comments = comments or None
        if operator_notes is not None:
            job.operator_notes = operator_notes or None
        _mark_block_after(job)

        db.session.commit()
        warnings = job.measurements.get("warnings") or []
        if warnings:
            logger.warning("Job %s completed with measurement warnings: %s", job.id, "; ".join(warnings))
        logger.info("Completed %s job %s", job.stage, job.id)
        return job

    return run_with_retry(_op)


def _require_comment(comment) -> str:
    if comment is None or not isinstance(comment, str) or not comment.strip():
        raise ValidationError("A comment explaining the skip is required", field="comment")
    return comment.strip()


def _apply_skip(job: ProductionJob, comment: str) -> None:
    _transition(job, JOB_STATUS_SKIPPED)
    job.start_time = None
    job.end_time = None
    job.measurements = None
    job.machine_id = None
    job.trolley_id = None
    job.stoppage_reason = STOPPAGE_NONE
    job.stoppage_start = None
    job.stoppage_end = None
    job.maintenance_notes = None
    job.comments = comment
    _mark_block_after(job)


def skip_job(job_id: int, *, comment: str) -> ProductionJob:
    """pending -> skipped. The comment is the only record of why."""
    text = _require_comment(comment)

    def _op():
        job = get_job(job_id, lock=True)
        _apply_skip(job, text)
        db.session.commit()
        logger.info("Skipped %s job %s", job.stage, job.id)
        return job

    return run_with_retry(_op)


def skip_stage(*, block_id: int, stage: str, comment: str) -> ProductionJob:
    """Queue and skip a stage in one transaction."""
    _require_stage(stage)
    text = _require_comment(comment)

    def _op():
        job = _create_job_inner(block_id=block_id, stage=stage, status=JOB_STATUS_PENDING)
        _apply_skip(job, text)
        db.session.commit()
        logger.info("Skipped %s for block %s (job %s)", stage, block_id, job.id)
        return job

    return run_with_retry(_op)


def pause_job(job_id: int, *, reason: str | None = None) -> ProductionJob:
    reason = _optional_text(reason, "reason")

    def _op():
        job = get_job(job_id, lock=True)
        _transition(job, JOB_STATUS_PAUSED)
        if reason:
            job.operator_notes = reason
        db.session.commit()
        return job

    return run_with_retry(_op)


def resume_job(job_id: int) -> ProductionJob:
    def _op():
        job = get_job(job_id, lock=True)
        if job.status != JOB_STATUS_PAUSED:
            raise ValidationError(
                f"Only paused jobs can be resumed; job {job.id} is {job.status}",
                job_id=job.id,
            )
        _transition(job, JOB_STATUS_IN_PROGRESS)
        db.session.commit()
        return job

    return run_with_retry(_op)


def fail_job(job_id: int, *, reason: str | None = None, end_time=None) -> ProductionJob:
    """Record a failed attempt. The stage can be retried with a new job."""
    end_dt = _parse_time(end_time, "end_time", default_now=True)
    reason = _optional_text(reason, "reason")

    def _op():
        job = get_job(job_id, lock=True)
        _transition(job, JOB_STATUS_FAILED)
        if job.start_time is not None and end_dt < job.start_time:
            raise ValidationError("end_time must not be before start_time", field="end_time")
        job.end_time = end_dt
        if reason:
            job.comments = reason
        db.session.commit()
        logger.info("Failed %s job %s", job.stage, job.id)
        return job

    return run_with_retry(_op)


def cancel_job(job_id: int, *, reason: str | None = None) -> ProductionJob:
    reason = _optional_text(reason, "reason")

    def _op():
        job = get_job(job_id, lock=True)
        _transition(job, JOB_STATUS_CANCELLED)
        if reason:
            job.comments = reason
        db.session.commit()
        logger.info("Cancelled %s job %s", job.stage, job.id)
        return job

    return run_with_retry(_op)


def update_job_notes(
    job_id: int,
    *,
    operator_notes: str | None = None,
    comments: str | None = None,
    photos=None,
) -> ProductionJob:
    """Annotations only; status, times and measurements are untouched."""
    photo_refs = _clean_photos(photos) if photos is not None else None
    operator_notes = _optional_text(operator_notes, "operator_notes")
    comments = _optional_text(comments, "comments")

    def _op():
        job = get_job(job_id, lock=True)
        if operator_notes is not None:
            job.operator_notes = operator_notes or None
        if comments is not None:
            text = comments or None
            if job.status == JOB_STATUS_SKIPPED and text is None:
                raise ValidationError("Skipped jobs must keep their comment", field="comments")
            job.comments = text
        if photo_refs is not None:
            job.photos = photo_refs
        db.session.commit()
        return job

    return run_with_retry(_op)
