# slabworks/exceptions.py
"""
Typed errors raised by the pipeline and inventory services.

Every error carries:
- code: stable machine-readable identifier
- status_code: HTTP status the route layer answers with
- details: structured context (current vs. requested quantities, ids)

Services raise these and never return partial results. Routes catch
SlabworksError and render to_dict(); anything else is a 500.
"""
from __future__ import annotations

from typing import Any


class SlabworksError(Exception):
    """Base class for all engine errors."""

    code = "SLABWORKS_ERROR"
    status_code = 400

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        payload = {"error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(SlabworksError, ValueError):
    """400-level input problem (missing field, bad time ordering)."""

    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(SlabworksError, LookupError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} {entity_id} not found", entity=entity, entity_id=entity_id)


class EligibilityError(SlabworksError):
    """Stage-order violation: the preceding stage has not been passed."""

    code = "NOT_ELIGIBLE"
    status_code = 409


class ConflictError(SlabworksError):
    """A non-terminal job already exists for the same block and stage."""

    code = "CONFLICT"
    status_code = 409


class CapacityExceededError(SlabworksError):
    code = "CAPACITY_EXCEEDED"
    status_code = 409

    def __init__(self, *, stand_id: int, current: int, requested: int, capacity: int):
        super().__init__(
            f"Cannot exceed maximum capacity of {capacity}. "
            f"Current: {current}, attempting to add: {requested}",
            stand_id=stand_id,
            current=current,
            requested=requested,
            capacity=capacity,
        )
        self.current = current
        self.requested = requested
        self.capacity = capacity


class InsufficientStockError(SlabworksError):
    code = "INSUFFICIENT_STOCK"
    status_code = 409

    def __init__(self, *, finished_good_id: int, available: int, requested: int):
        super().__init__(
            f"Cannot ship {requested} slabs. Only {available} available.",
            finished_good_id=finished_good_id,
            available=available,
            requested=requested,
        )
        self.available = available
        self.requested = requested


class StorageError(SlabworksError):
    """Unexpected backing-store failure. Never reported as success."""

    code = "STORAGE_ERROR"
    status_code = 500
