# Overview: Transaction helpers for concurrent writers: row locks, retries, commit.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import TransientStorageError

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, (OperationalError, StaleDataError)):
        return True
    # PostgreSQL serialization failures / deadlocks surface as DBAPIError
    # subclasses carrying SQLSTATE 40001 / 40P01.
    if isinstance(exc, DBAPIError):
        code = getattr(exc.orig, "pgcode", None) or getattr(exc.orig, "sqlstate", None)
        return code in ("40001", "40P01")
    return False


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation as one atomic unit, retrying on concurrency failures.

    Any exception rolls the session back so no partial write survives.
    OperationalError (locks, deadlocks) and StaleDataError (optimistic
    locking) are retried with exponential back-off; once attempts are
    exhausted they surface as TransientStorageError.
    """
    for attempt in range(attempts):
        try:
            return func()
        except Exception as exc:
            db.session.rollback()
            if not _is_transient(exc):
                raise
            if attempt >= attempts - 1:
                raise TransientStorageError(
                    "Storage temporarily unavailable, retry the operation",
                    {"attempts": attempts},
                ) from exc
            logger.warning("Retrying after transient storage error (attempt %s): %s", attempt + 1, exc)
            time.sleep(backoff_base * (2 ** attempt))
