# Overview: Transaction helpers for the check-and-update operations; row locks, retry, and error translation.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..exceptions import SlabworksError, StorageError
from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    On SQLite the version_id columns on Stand/FinishedGood/ProductionJob
    turn a lost race into a StaleDataError that run_with_retry replays.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation as one all-or-nothing unit.

    - Any failure rolls the session back, so no partial write survives.
    - OperationalError (deadlocks, lock timeouts) and StaleDataError
      (optimistic version conflicts) are retried with a fresh read.
    - Business errors (SlabworksError) propagate unchanged and are never
      retried.
    - Exhausted retries and other SQLAlchemy failures surface as StorageError.
    """
    for attempt in range(attempts):
        try:
            return func()
        except SlabworksError:
            db.session.rollback()
            raise
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                logger.error("Giving up after %d attempts: %s", attempts, exc)
                raise StorageError("Concurrent update could not be applied; try again") from exc
            logger.info("Retrying after concurrency conflict (attempt %d): %s", attempt + 1, exc)
            time.sleep(backoff_base * (2 ** attempt))
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Storage failure")
            raise StorageError("Storage failure") from exc
        except Exception:
            db.session.rollback()
            raise

