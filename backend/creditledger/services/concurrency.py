# Overview: Row locking and retry helpers that make each ledger operation a single writer per aggregate.

"""
Ledger Concurrency

Every balance mutation is a read-modify-write on one aggregate row:
- Buyer.current_credit_cents
- Supplier.balance_cents
- ItemStock.quantity (one row per item and branch; transfers lock both)
- Cheque.status

Rules:
- The aggregate is read through get_locked()/lock_for_update() before it is
  changed, so two writers on the same buyer serialize instead of both
  reading the old balance.
- Buyer, Supplier, ItemStock and Cheque carry a version_id column; a write
  that lost the race raises StaleDataError at flush.
- Services wrap their whole read-validate-write step in a closure and hand it
  to run_with_retry(). A retry rolls the session back and re-runs the closure
  from the fresh row, so the closure must not capture ORM state loaded
  outside it.
- Ledger errors (ValidationError, NotFound, ...) are never retried.
"""

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import NotFound
from ..extensions import db


logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    SELECT ... FOR UPDATE on a balance row.

    SQLite ignores the clause; there the version_id check is what catches a
    concurrent writer.
    """
    return query.with_for_update()


def get_locked(model, entity_id, label: str | None = None):
    """Load one aggregate row FOR UPDATE or raise NotFound."""
    row = lock_for_update(db.session.query(model).filter_by(id=entity_id)).first()
    if row is None:
        raise NotFound(f"{label or model.__name__} {entity_id} not found")
    return row


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run one ledger mutation, retrying lock timeouts and lost version races.

    Sleeps backoff_base * 2**n between tries. The last failure propagates.
    """
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt == attempts:
                logger.error("Ledger write failed after %s attempts: %s", attempts, exc)
                raise
            logger.warning("Ledger write conflict (attempt %s/%s): %s", attempt, attempts, exc)
            time.sleep(backoff_base * (2 ** (attempt - 1)))


def commit_with_retry(*, attempts: int = 3, backoff_base: float = 0.1):
    """Commit the request's unit of work (mutations plus their audit entries)."""
    return run_with_retry(db.session.commit, attempts=attempts, backoff_base=backoff_base)
