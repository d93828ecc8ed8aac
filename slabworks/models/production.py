from __future__ import annotations

from ..extensions import db
from slabworks.time_utils import to_utc_z


# Fixed processing order; a block passes each stage before the next
STAGE_CUTTING = "cutting"
STAGE_GRINDING = "grinding"
STAGE_CHEMICAL_CONVERSION = "chemical_conversion"
STAGE_EPOXY = "epoxy"
STAGE_POLISHING = "polishing"
STAGES = (
    STAGE_CUTTING,
    STAGE_GRINDING,
    STAGE_CHEMICAL_CONVERSION,
    STAGE_EPOXY,
    STAGE_POLISHING,
)

# Stages worked on a machine; the others are manual stations
MACHINE_STAGES = frozenset({STAGE_CUTTING, STAGE_GRINDING, STAGE_POLISHING})

JOB_STATUS_PENDING = "pending"
JOB_STATUS_IN_PROGRESS = "in_progress"
JOB_STATUS_PAUSED = "paused"
JOB_STATUS_COMPLETED = "completed"
JOB_STATUS_FAILED = "failed"
JOB_STATUS_CANCELLED = "cancelled"
JOB_STATUS_SKIPPED = "skipped"

OPEN_JOB_STATUSES = (JOB_STATUS_PENDING, JOB_STATUS_IN_PROGRESS, JOB_STATUS_PAUSED)
PASSED_JOB_STATUSES = (JOB_STATUS_COMPLETED, JOB_STATUS_SKIPPED)
TERMINAL_JOB_STATUSES = (
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
    JOB_STATUS_CANCELLED,
    JOB_STATUS_SKIPPED,
)

STOPPAGE_NONE = "none"
STOPPAGE_REASONS = (STOPPAGE_NONE, "power_outage", "maintenance", "other")

_OPEN_JOB_PREDICATE = "status IN ('pending', 'in_progress', 'paused')"


def previous_stage(stage: str) -> str | None:
    idx = STAGES.index(stage)
    return STAGES[idx - 1] if idx > 0 else None


class Machine(db.Model):
    __tablename__ = "machines"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False, unique=True)
    machine_type = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="idle")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "machine_type": self.machine_type,
            "status": self.status,
        }


class Trolley(db.Model):
    __tablename__ = "trolleys"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    number = db.Column(db.String(32), nullable=False, unique=True)
    status = db.Column(db.String(16), nullable=False, default="available")
    current_block_id = db.Column(db.Integer, db.ForeignKey("blocks.id"), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "number": self.number,
            "status": self.status,
            "current_block_id": self.current_block_id,
        }


class ProductionJob(db.Model):
    """
    One attempt to process a block at one stage.

    Rows are an audit trail: never deleted, and a failed or cancelled
    attempt is left as-is when the stage is retried with a new row.

    At most one open (pending/in_progress/paused) job per (block, stage);
    the partial unique index backs the row lock taken in the service.
    """
    __tablename__ = "production_jobs"
    __table_args__ = (
        db.Index("ix_production_jobs_block_stage", "block_id", "stage"),
        db.Index("ix_production_jobs_stage_status", "stage", "status"),
        db.Index(
            "uq_production_jobs_open_block_stage",
            "block_id",
            "stage",
            unique=True,
            sqlite_where=db.text(_OPEN_JOB_PREDICATE),
            postgresql_where=db.text(_OPEN_JOB_PREDICATE),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    block_id = db.Column(db.Integer, db.ForeignKey("blocks.id"), nullable=False, index=True)
    stage = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=JOB_STATUS_PENDING)

    start_time = db.Column(db.DateTime(timezone=True), nullable=True)
    end_time = db.Column(db.DateTime(timezone=True), nullable=True)

    # Stage-tagged payload; see services.stage_measurements
    measurements = db.Column(db.JSON, nullable=True)

    machine_id = db.Column(db.Integer, db.ForeignKey("machines.id"), nullable=True)
    trolley_id = db.Column(db.Integer, db.ForeignKey("trolleys.id"), nullable=True)

    stoppage_reason = db.Column(db.String(32), nullable=False, default=STOPPAGE_NONE)
    stoppage_start = db.Column(db.DateTime(timezone=True), nullable=True)
    stoppage_end = db.Column(db.DateTime(timezone=True), nullable=True)
    maintenance_notes = db.Column(db.Text, nullable=True)

    operator_notes = db.Column(db.Text, nullable=True)
    comments = db.Column(db.Text, nullable=True)
    photos = db.Column(db.JSON, nullable=False, default=list)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    block = db.relationship("Block", back_populates="jobs")
    machine = db.relationship("Machine")
    trolley = db.relationship("Trolley")

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_JOB_STATUSES

    def __repr__(self) -> str:
        return f"<ProductionJob id={self.id} block_id={self.block_id} stage={self.stage} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "block_id": self.block_id,
            "stage": self.stage,
            "status": self.status,
            "is_open": self.is_open,
            "start_time": to_utc_z(self.start_time),
            "end_time": to_utc_z(self.end_time),
            "measurements": self.measurements,
            "machine_id": self.machine_id,
            "trolley_id": self.trolley_id,
            "stoppage": {
                "reason": self.stoppage_reason,
                "start": to_utc_z(self.stoppage_start),
                "end": to_utc_z(self.stoppage_end),
                "maintenance_notes": self.maintenance_notes,
            },
            "operator_notes": self.operator_notes,
            "comments": self.comments,
            "photos": list(self.photos or []),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
