# Overview: Retry and locking helpers for order/cart writes that can race.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking while an order or cart item is being changed.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, Postgres honors it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a unit of DB work with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, "database is locked") and
    StaleDataError (version_id conflicts on orders, cart items, products).
    func must re-read whatever it changes; the session is rolled back first.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            logger.warning("Concurrent write conflict (attempt %d/%d): %s", attempt + 1, attempts, exc)
            time.sleep(backoff_base * (2 ** attempt))
