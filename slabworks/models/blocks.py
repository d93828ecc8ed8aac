from __future__ import annotations

from sqlalchemy import event, inspect

from ..extensions import db
from ..exceptions import ValidationError
from slabworks.time_utils import to_utc_z


BLOCK_STATUS_IN_STOCK = "in_stock"
BLOCK_STATUS_PROCESSING = "processing"
BLOCK_STATUS_COMPLETED = "completed"
BLOCK_STATUSES = (BLOCK_STATUS_IN_STOCK, BLOCK_STATUS_PROCESSING, BLOCK_STATUS_COMPLETED)

# Only status annotations may change once a block is received
BLOCK_MUTABLE_FIELDS = frozenset({"status", "comments"})


class Block(db.Model):
    """
    Raw granite block as received from the quarry.

    Geometry (inches), weights and identity are fixed on receipt. Jobs and
    finished goods reference blocks but never own them.
    """
    __tablename__ = "blocks"
    __table_args__ = (
        db.UniqueConstraint("block_number", name="uq_blocks_block_number"),
        db.Index("ix_blocks_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    block_number = db.Column(db.String(64), nullable=False)
    block_type = db.Column(db.String(64), nullable=False)
    marka = db.Column(db.String(128), nullable=True)
    mine_name = db.Column(db.String(128), nullable=True)
    vehicle_number = db.Column(db.String(64), nullable=True)

    length = db.Column(db.Numeric(10, 2), nullable=False)
    width = db.Column(db.Numeric(10, 2), nullable=False)
    height = db.Column(db.Numeric(10, 2), nullable=False)
    density = db.Column(db.Numeric(10, 2), nullable=False, default=2.7)
    net_weight = db.Column(db.Numeric(10, 2), nullable=True)
    block_weight = db.Column(db.Numeric(10, 2), nullable=False)

    color = db.Column(db.String(64), nullable=False)

    photo_front = db.Column(db.String(512), nullable=True)
    photo_back = db.Column(db.String(512), nullable=True)
    comments = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default=BLOCK_STATUS_IN_STOCK)

    date_received = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    jobs = db.relationship("ProductionJob", back_populates="block", lazy="dynamic")
    finished_goods = db.relationship("FinishedGood", back_populates="block", lazy="dynamic")

    def __repr__(self) -> str:
        return f"<Block id={self.id} number={self.block_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "block_number": self.block_number,
            "block_type": self.block_type,
            "marka": self.marka,
            "mine_name": self.mine_name,
            "vehicle_number": self.vehicle_number,
            "length": float(self.length),
            "width": float(self.width),
            "height": float(self.height),
            "density": float(self.density) if self.density is not None else None,
            "net_weight": float(self.net_weight) if self.net_weight is not None else None,
            "block_weight": float(self.block_weight),
            "color": self.color,
            "photo_front": self.photo_front,
            "photo_back": self.photo_back,
            "comments": self.comments,
            "status": self.status,
            "date_received": to_utc_z(self.date_received),
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(Block, "before_update")
def _reject_block_mutation(mapper, connection, target):
    state = inspect(target)
    changed = [
        attr.key
        for attr in state.attrs
        if attr.key not in BLOCK_MUTABLE_FIELDS
        and attr.key in mapper.columns.keys()
        and attr.history.has_changes()
    ]
    if changed:
        raise ValidationError(
            f"Block {target.id} is immutable; cannot change {', '.join(sorted(changed))}",
            block_id=target.id,
            fields=sorted(changed),
        )
