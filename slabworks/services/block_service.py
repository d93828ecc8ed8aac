# Overview: Service-layer operations for the block registry; receipt, lookup, and status annotations.

# slabworks/services/block_service.py
"""
Block Registry

- A block is registered once, on receipt, and its geometry/identity never
  changes afterwards (enforced by the ORM listener in models.blocks).
- block_number is human-assigned and unique.
- status is an annotation for filtering (in_stock -> processing -> completed)
  driven by the pipeline; it does not gate anything by itself.
"""
from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from ..exceptions import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Block
from ..models.blocks import BLOCK_STATUSES
from .concurrency import lock_for_update, run_with_retry

logger = logging.getLogger(__name__)


def get_block(block_id: int, *, lock: bool = False) -> Block:
    query = db.session.query(Block).filter_by(id=block_id)
    if lock:
        query = lock_for_update(query)
    block = query.first()
    if block is None:
        raise NotFoundError("Block", block_id)
    return block


def get_block_by_number(block_number: str) -> Block:
    block = Block.query.filter_by(block_number=block_number.strip()).first()
    if block is None:
        raise NotFoundError("Block", block_number)
    return block


def list_blocks(*, status: str | None = None, search: str | None = None, limit: int = 500) -> list[Block]:
    q = Block.query
    if status is not None:
        if status not in BLOCK_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(BLOCK_STATUSES)}")
        q = q.filter(Block.status == status)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(db.or_(Block.block_number.ilike(pattern), Block.color.ilike(pattern)))
    return q.order_by(Block.date_received.desc(), Block.id.desc()).limit(limit).all()


def register_block(**fields) -> Block:
    """
    Record a received block.

    fields are already validated and normalized (see validation.validate_payload).
    Raises ConflictError when block_number is taken.
    """
    def _op():
        block_number = fields["block_number"]
        if Block.query.filter_by(block_number=block_number).first() is not None:
            raise ConflictError(
                f"Block number {block_number} already exists",
                block_number=block_number,
            )

        block = Block(**fields)
        db.session.add(block)
        try:
            db.session.flush()
        except IntegrityError:
            # Lost a race with another receipt of the same number
            db.session.rollback()
            raise ConflictError(
                f"Block number {block_number} already exists",
                block_number=block_number,
            )

        db.session.commit()
        logger.info("Registered block %s (id=%s)", block.block_number, block.id)
        return block

    return run_with_retry(_op)


def annotate_block(block_id: int, *, status: str | None = None, comments: str | None = None) -> Block:
    """Update the only mutable parts of a block: status and comments."""
    def _op():
        block = get_block(block_id, lock=True)
        if status is not None:
            if status not in BLOCK_STATUSES:
                raise ValidationError(f"status must be one of: {', '.join(BLOCK_STATUSES)}")
            block.status = status
        if comments is not None:
            block.comments = comments.strip() or None
        db.session.commit()
        return block

    return run_with_retry(_op)


def set_block_status(block: Block, status: str) -> None:
    """Pipeline-driven annotation; caller owns the transaction."""
    if block.status != status:
        block.status = status
