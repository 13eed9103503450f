# Overview: Transaction helpers shared by every ledger-writing service.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import DependencyFailure

logger = logging.getLogger(__name__)

# IntegrityError is retryable because the ledger's uniqueness key is the
# backstop for concurrent duplicate writes: the retry observes the row the
# other writer committed and turns into a no-op.
RETRYABLE_ERRORS = (OperationalError, StaleDataError, IntegrityError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a unit of work as one transaction.

    - Any exception rolls the session back, so a failed operation never leaves
      half-applied ledger state behind.
    - Concurrency-related failures are retried with exponential backoff.
    - An OperationalError that survives every attempt means the store is
      unavailable and is surfaced as DependencyFailure.
    """
    for attempt in range(attempts):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                if isinstance(exc, OperationalError):
                    logger.error("Persistent store unavailable after %s attempts: %s", attempts, exc)
                    raise DependencyFailure("Persistent store unavailable") from exc
                raise
            logger.warning("Retrying after %s (attempt %s/%s)", type(exc).__name__, attempt + 1, attempts)
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
