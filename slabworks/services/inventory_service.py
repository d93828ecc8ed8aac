# Overview: Service-layer operations for stand inventory; stocking, shipping, media, and occupancy read models.

# slabworks/services/inventory_service.py
"""
Stand Inventory Invariants (authoritative)

Capacity:
- For every stand: SUM(finished_goods.slab_count) <= stand.max_capacity.
- add_stock reads the current sum AFTER locking the stand row and bumps the
  stand's version in the same transaction, so two writers cannot both pass
  the check against the same reading.

Stock never goes negative:
- ship_goods locks the finished good and debits only what is there.
- edit_shipment treats the previously shipped amount as available again:
    available = finished_good.slab_count + shipment.slabs_shipped
  and re-debits the new amount in one step.
- Finished goods at zero are kept; shipments reference them.

Read model:
- coverage = round(current / max_capacity, 2), banded by
  measurement_service.occupancy_band. Reads are not linearizable with
  concurrent writers.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from flask import current_app
from sqlalchemy import func
from sqlalchemy.orm.attributes import flag_modified

from ..exceptions import (
    CapacityExceededError,
    EligibilityError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import Block, FinishedGood, ProductionJob, Shipment, Stand
from ..models.inventory import DEFAULT_STAND_CAPACITY
from ..models.production import PASSED_JOB_STATUSES, STAGE_POLISHING
from ..time_utils import coerce_datetime, utcnow
from .block_service import get_block
from .concurrency import lock_for_update, run_with_retry
from .measurement_service import occupancy_band, occupancy_ratio, slab_area

logger = logging.getLogger(__name__)

MEDIA_URL_PREFIX = "/api/finished-goods/media"
VIDEO_EXTENSIONS = (".mp4", ".webm", ".ogg")


@dataclass(frozen=True)
class StandOccupancy:
    stand: Stand
    current_slabs: int

    @property
    def available(self) -> int:
        return max(self.stand.max_capacity - self.current_slabs, 0)

    @property
    def coverage(self) -> float:
        return occupancy_ratio(self.current_slabs, self.stand.max_capacity)

    @property
    def band(self) -> str:
        return occupancy_band(self.coverage)

    def to_dict(self) -> dict:
        data = self.stand.to_dict()
        data.update(
            {
                "current_slabs": self.current_slabs,
                "available": self.available,
                "coverage": self.coverage,
                "band": self.band,
            }
        )
        return data


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------

def _positive_int(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer", field=field)
    if value <= 0:
        raise ValidationError(f"{field} must be > 0", field=field)
    return value


def _required_text(value, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required", field=field)
    return value.strip()


def _timestamp(value, field: str):
    try:
        dt = coerce_datetime(value, field)
    except ValueError as e:
        raise ValidationError(str(e), field=field)
    return dt or utcnow()


def _media_refs(references) -> list[str]:
    if references is None:
        return []
    if isinstance(references, str) or not isinstance(references, (list, tuple)):
        raise ValidationError("media must be a list of reference strings", field="media")
    refs = []
    for ref in references:
        if not isinstance(ref, str):
            raise ValidationError("media must be a list of reference strings", field="media")
        ref = ref.strip()
        if ref:
            refs.append(ref)
    return refs


def _get_stand(stand_id: int, *, lock: bool = False) -> Stand:
    query = db.session.query(Stand).filter_by(id=stand_id)
    if lock:
        query = lock_for_update(query)
    stand = query.first()
    if stand is None:
        raise NotFoundError("Stand", stand_id)
    return stand


def get_finished_good(finished_good_id: int, *, lock: bool = False) -> FinishedGood:
    query = db.session.query(FinishedGood).filter_by(id=finished_good_id)
    if lock:
        query = lock_for_update(query)
    item = query.first()
    if item is None:
        raise NotFoundError("FinishedGood", finished_good_id)
    return item


def stand_current_slabs(stand_id: int) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(FinishedGood.slab_count), 0))
        .filter(FinishedGood.stand_id == stand_id)
        .scalar()
    )
    return int(total or 0)


def _block_passed_polishing(block_id: int) -> bool:
    latest = (
        ProductionJob.query.filter(
            ProductionJob.block_id == block_id,
            ProductionJob.stage == STAGE_POLISHING,
        )
        .order_by(
            func.coalesce(ProductionJob.start_time, ProductionJob.created_at).desc(),
            ProductionJob.id.desc(),
        )
        .first()
    )
    return latest is not None and latest.status in PASSED_JOB_STATUSES


# ---------------------------------------------------------------------------
# setup
# ---------------------------------------------------------------------------

def provision_stands(*, rows: int, positions: int, capacity: int = DEFAULT_STAND_CAPACITY) -> int:
    """
    Create the fixed row x position stand grid. Existing stands are left
    alone, so running it twice is harmless. Returns the number created.
    """
    _positive_int(rows, "rows")
    _positive_int(positions, "positions")
    _positive_int(capacity, "capacity")

    def _op():
        existing = {
            (r, p) for r, p in db.session.query(Stand.row_number, Stand.position)
        }
        created = 0
        for row in range(1, rows + 1):
            for position in range(1, positions + 1):
                if (row, position) in existing:
                    continue
                db.session.add(Stand(row_number=row, position=position, max_capacity=capacity))
                created += 1
        db.session.commit()
        return created

    created = run_with_retry(_op)
    if created:
        logger.info("Provisioned %d stands (%dx%d, capacity %d)", created, rows, positions, capacity)
    return created


# ---------------------------------------------------------------------------
# stock movements
# ---------------------------------------------------------------------------

def add_stock(
    *,
    stand_id: int,
    block_id: int,
    slab_count: int,
    quality: str | None = None,
    media=None,
    stock_added_at=None,
) -> FinishedGood:
    """
    Place slabs of one block into a stand.

    Raises:
        CapacityExceededError: current + slab_count > stand.max_capacity
        EligibilityError: STOCK_REQUIRES_FINISHED_BLOCK is on and the block
            has not passed polishing
        NotFoundError: unknown stand or block
    """
    _positive_int(slab_count, "slab_count")
    refs = _media_refs(media)
    added_at = _timestamp(stock_added_at, "stock_added_at")
    if quality is not None and (not isinstance(quality, str) or not quality.strip()):
        raise ValidationError("quality must be a non-empty string", field="quality")
    require_finished = bool(current_app.config.get("STOCK_REQUIRES_FINISHED_BLOCK", False))

    def _op():
        stand = _get_stand(stand_id, lock=True)
        block = get_block(block_id)

        if require_finished and not _block_passed_polishing(block.id):
            raise EligibilityError(
                f"Block {block.block_number} has not finished polishing",
                block_id=block.id,
            )

        current = stand_current_slabs(stand.id)
        if current + slab_count > stand.max_capacity:
            logger.info(
                "Rejected %d slabs for stand %s: %d/%d in use",
                slab_count, stand.label, current, stand.max_capacity,
            )
            raise CapacityExceededError(
                stand_id=stand.id,
                current=current,
                requested=slab_count,
                capacity=stand.max_capacity,
            )

        item = FinishedGood(
            stand_id=stand.id,
            block_id=block.id,
            quality=(quality or block.color or "").strip() or "unspecified",
            slab_count=slab_count,
            media=refs,
            stock_added_at=added_at,
        )
        db.session.add(item)
        # Rewrite the stand row even when the timestamp is unchanged so
        # version_id always moves; a concurrent add on the same stand then
        # fails its flush and is replayed against the new total.
        stand.last_stocked_at = added_at
        flag_modified(stand, "last_stocked_at")
        db.session.commit()
        logger.info("Stocked %d slabs of block %s in stand %s", slab_count, block.block_number, stand.label)
        return item

    return run_with_retry(_op)


def ship_goods(
    *,
    finished_good_id: int,
    slabs_shipped: int,
    shipping_company: str,
    shipped_at=None,
) -> Shipment:
    """Debit slabs from a finished good and record the shipment."""
    _positive_int(slabs_shipped, "slabs_shipped")
    company = _required_text(shipping_company, "shipping_company")
    shipped_dt = _timestamp(shipped_at, "shipped_at")

    def _op():
        item = get_finished_good(finished_good_id, lock=True)
        if slabs_shipped > item.slab_count:
            logger.info(
                "Rejected shipment of %d slabs from finished good %s: %d available",
                slabs_shipped, item.id, item.slab_count,
            )
            raise InsufficientStockError(
                finished_good_id=item.id,
                available=item.slab_count,
                requested=slabs_shipped,
            )

        item.slab_count = item.slab_count - slabs_shipped
        shipment = Shipment(
            finished_good_id=item.id,
            slabs_shipped=slabs_shipped,
            shipping_company=company,
            shipped_at=shipped_dt,
        )
        db.session.add(shipment)
        db.session.commit()
        logger.info("Shipped %d slabs from finished good %s via %s", slabs_shipped, item.id, company)
        return shipment

    return run_with_retry(_op)


def get_shipment(shipment_id: int, *, lock: bool = False) -> Shipment:
    query = db.session.query(Shipment).filter_by(id=shipment_id)
    if lock:
        query = lock_for_update(query)
    shipment = query.first()
    if shipment is None:
        raise NotFoundError("Shipment", shipment_id)
    return shipment


def edit_shipment(
    shipment_id: int,
    *,
    slabs_shipped: int | None = None,
    shipping_company: str | None = None,
    shipped_at=None,
) -> Shipment:
    """
    Correct a recorded shipment. Changing the count re-credits the old amount
    and debits the new one against the same finished good.
    """
    if slabs_shipped is not None:
        _positive_int(slabs_shipped, "slabs_shipped")
    company = _required_text(shipping_company, "shipping_company") if shipping_company is not None else None
    shipped_dt = _timestamp(shipped_at, "shipped_at") if shipped_at is not None else None

    def _op():
        shipment = get_shipment(shipment_id, lock=True)
        item = get_finished_good(shipment.finished_good_id, lock=True)

        if slabs_shipped is not None and slabs_shipped != shipment.slabs_shipped:
            available = item.slab_count + shipment.slabs_shipped
            if slabs_shipped > available:
                raise InsufficientStockError(
                    finished_good_id=item.id,
                    available=available,
                    requested=slabs_shipped,
                )
            item.slab_count = available - slabs_shipped
            shipment.slabs_shipped = slabs_shipped

        if company is not None:
            shipment.shipping_company = company
        if shipped_dt is not None:
            shipment.shipped_at = shipped_dt

        db.session.commit()
        return shipment

    return run_with_retry(_op)


# ---------------------------------------------------------------------------
# media references
# ---------------------------------------------------------------------------

def attach_media(finished_good_id: int, references) -> FinishedGood:
    """Append media references; duplicates are ignored."""
    refs = _media_refs(references)
    if not refs:
        raise ValidationError("No media references provided", field="media")

    def _op():
        item = get_finished_good(finished_good_id, lock=True)
        merged = list(item.media or [])
        for ref in refs:
            if ref not in merged:
                merged.append(ref)
        # Reassign so the JSON column is marked dirty
        item.media = merged
        db.session.commit()
        return item

    return run_with_retry(_op)


def media_urls(references) -> list[str]:
    """Map stored references to URLs the media store serves them under."""
    urls = []
    for ref in references or []:
        if ref.startswith("data:"):
            urls.append(ref)
            continue
        name = os.path.basename(ref)
        kind = "videos" if name.lower().endswith(VIDEO_EXTENSIONS) else "images"
        urls.append(f"{MEDIA_URL_PREFIX}/{kind}/{name}")
    return urls


# ---------------------------------------------------------------------------
# read model
# ---------------------------------------------------------------------------

def get_stand_occupancy(stand_id: int) -> StandOccupancy:
    stand = _get_stand(stand_id)
    return StandOccupancy(stand=stand, current_slabs=stand_current_slabs(stand.id))


def list_stands() -> list[StandOccupancy]:
    totals = dict(
        db.session.query(FinishedGood.stand_id, func.coalesce(func.sum(FinishedGood.slab_count), 0))
        .group_by(FinishedGood.stand_id)
        .all()
    )
    stands = Stand.query.order_by(Stand.row_number, Stand.position).all()
    return [StandOccupancy(stand=s, current_slabs=int(totals.get(s.id, 0))) for s in stands]


def list_finished_goods_by_stand(stand_id: int, *, include_empty: bool = False) -> list[FinishedGood]:
    _get_stand(stand_id)
    q = FinishedGood.query.filter(FinishedGood.stand_id == stand_id)
    if not include_empty:
        q = q.filter(FinishedGood.slab_count > 0)
    return q.order_by(FinishedGood.stock_added_at.desc(), FinishedGood.id.desc()).all()


def list_shipments(*, finished_good_id: int | None = None, limit: int = 500) -> list[Shipment]:
    q = Shipment.query
    if finished_good_id is not None:
        q = q.filter(Shipment.finished_good_id == finished_good_id)
    return q.order_by(Shipment.shipped_at.desc(), Shipment.id.desc()).limit(limit).all()


def get_stand_summary() -> dict:
    """
    Warehouse-wide totals.

    quality_distribution has one entry per (block, quality) still in stock;
    total_area is the sum of slab_area over those entries.
    """
    total_capacity = int(db.session.query(func.coalesce(func.sum(Stand.max_capacity), 0)).scalar() or 0)
    total_stands = db.session.query(func.count(Stand.id)).scalar() or 0
    used_capacity = int(db.session.query(func.coalesce(func.sum(FinishedGood.slab_count), 0)).scalar() or 0)

    occupied_stands = (
        db.session.query(FinishedGood.stand_id)
        .group_by(FinishedGood.stand_id)
        .having(func.sum(FinishedGood.slab_count) > 0)
        .count()
    )

    rows = (
        db.session.query(
            Block.id,
            Block.block_number,
            Block.color,
            Block.length,
            Block.height,
            FinishedGood.quality,
            func.sum(FinishedGood.slab_count).label("count"),
        )
        .join(FinishedGood, FinishedGood.block_id == Block.id)
        .group_by(Block.id, Block.block_number, Block.color, Block.length, Block.height, FinishedGood.quality)
        .having(func.sum(FinishedGood.slab_count) > 0)
        .order_by(Block.block_number, FinishedGood.quality)
        .all()
    )

    distribution = []
    total_area = 0.0
    for row in rows:
        count = int(row.count)
        area = slab_area(row.length, row.height, count)
        total_area += area
        distribution.append(
            {
                "block_id": row.id,
                "block_number": row.block_number,
                "color": row.color,
                "quality": row.quality,
                "count": count,
                "length": float(row.length),
                "height": float(row.height),
                "area": area,
            }
        )

    return {
        "total_capacity": total_capacity,
        "used_capacity": used_capacity,
        "coverage": occupancy_ratio(used_capacity, total_capacity) if total_capacity else 0.0,
        "quality_distribution": distribution,
        "total_area": round(total_area, 2),
        "occupied_stands": occupied_stands,
        "total_stands": total_stands,
    }
