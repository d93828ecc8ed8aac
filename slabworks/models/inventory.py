from __future__ import annotations

from ..extensions import db
from slabworks.time_utils import to_utc_z


DEFAULT_STAND_CAPACITY = 200


class Stand(db.Model):
    """
    Fixed physical storage bin for finished slabs, addressed by (row, position).

    Stands are provisioned once (see inventory_service.provision_stands) and
    never created or removed by requests. version_id is bumped on every
    stock placement so two writers racing on the same stand cannot both
    commit against the same occupancy reading.
    """
    __tablename__ = "stands"
    __table_args__ = (
        db.UniqueConstraint("row_number", "position", name="uq_stands_row_position"),
        db.CheckConstraint("max_capacity > 0", name="ck_stands_capacity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    row_number = db.Column(db.Integer, nullable=False)
    position = db.Column(db.Integer, nullable=False)
    max_capacity = db.Column(db.Integer, nullable=False, default=DEFAULT_STAND_CAPACITY)
    last_stocked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    finished_goods = db.relationship("FinishedGood", back_populates="stand", lazy="dynamic")

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def label(self) -> str:
        return f"R{self.row_number}-P{self.position:02d}"

    def __repr__(self) -> str:
        return f"<Stand id={self.id} {self.label} capacity={self.max_capacity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "row_number": self.row_number,
            "position": self.position,
            "label": self.label,
            "max_capacity": self.max_capacity,
            "last_stocked_at": to_utc_z(self.last_stocked_at),
        }


class FinishedGood(db.Model):
    """
    Slabs of one block, of one quality, stored in one stand.

    slab_count only goes down (through shipments) and the row stays at zero
    so shipment history keeps its parent.
    """
    __tablename__ = "finished_goods"
    __table_args__ = (
        db.CheckConstraint("slab_count >= 0", name="ck_finished_goods_slab_count_nonneg"),
        db.Index("ix_finished_goods_stand", "stand_id"),
        db.Index("ix_finished_goods_block", "block_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    stand_id = db.Column(db.Integer, db.ForeignKey("stands.id"), nullable=False)
    block_id = db.Column(db.Integer, db.ForeignKey("blocks.id"), nullable=False)
    quality = db.Column(db.String(64), nullable=False)
    slab_count = db.Column(db.Integer, nullable=False)

    # Reference strings into the media store; bytes live elsewhere
    media = db.Column(db.JSON, nullable=False, default=list)

    stock_added_at = db.Column(db.DateTime(timezone=True), nullable=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    stand = db.relationship("Stand", back_populates="finished_goods")
    block = db.relationship("Block", back_populates="finished_goods")
    shipments = db.relationship(
        "Shipment",
        back_populates="finished_good",
        order_by="Shipment.shipped_at.desc()",
        lazy="select",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<FinishedGood id={self.id} stand_id={self.stand_id} block_id={self.block_id} slabs={self.slab_count}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "stand_id": self.stand_id,
            "block_id": self.block_id,
            "quality": self.quality,
            "slab_count": self.slab_count,
            "media": list(self.media or []),
            "media_count": len(self.media or []),
            "stock_added_at": to_utc_z(self.stock_added_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Shipment(db.Model):
    __tablename__ = "shipments"
    __table_args__ = (
        db.CheckConstraint("slabs_shipped > 0", name="ck_shipments_slabs_positive"),
        db.Index("ix_shipments_shipped_at", "shipped_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    finished_good_id = db.Column(db.Integer, db.ForeignKey("finished_goods.id"), nullable=False, index=True)
    slabs_shipped = db.Column(db.Integer, nullable=False)
    shipping_company = db.Column(db.String(128), nullable=False)
    shipped_at = db.Column(db.DateTime(timezone=True), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    finished_good = db.relationship("FinishedGood", back_populates="shipments")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "finished_good_id": self.finished_good_id,
            "slabs_shipped": self.slabs_shipped,
            "shipping_company": self.shipping_company,
            "shipped_at": to_utc_z(self.shipped_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
