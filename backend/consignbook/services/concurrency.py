# Overview: Transaction and retry helpers shared by every engine operation.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)

RETRYABLE = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    SELECT ... FOR UPDATE on the rows a ledger operation is about to change.

    SQLite has no row locks and drops the clause; there the version_id
    counters on products and orders catch concurrent writers instead.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run ``func`` as a single transaction and return its result.

    ``func`` performs its writes and commits once. On any error the session
    is rolled back before the exception leaves this function. Lock timeouts
    and version conflicts are retried with exponential backoff, re-reading
    rows on the next attempt.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return func()
        except RETRYABLE as exc:
            db.session.rollback()
            if attempt >= attempts:
                raise
            delay = backoff_base * (2 ** (attempt - 1))
            logger.warning("ledger write conflict, retry %d/%d in %.2fs: %s", attempt, attempts - 1, delay, exc)
            time.sleep(delay)
        except Exception:
            db.session.rollback()
            raise
