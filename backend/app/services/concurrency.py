# Overview: Transaction helpers shared by every component; retry, row locks, missing-table detection.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError, ProgrammingError
from sqlalchemy.orm.exc import StaleDataError

from ..validation import StorageError


_MISSING_TABLE_MARKERS = (
    "no such table",                # sqlite
    "undefinedtable",               # postgresql (psycopg class name)
    "does not exist",               # postgresql message
    "doesn't exist",                # mysql 1146
)


def is_missing_table(exc: Exception) -> bool:
    """True when a DB error means the table has not been created yet."""
    if not isinstance(exc, (OperationalError, ProgrammingError)):
        return False
    text = f"{type(getattr(exc, 'orig', exc)).__name__} {exc}".lower()
    return any(marker in text for marker in _MISSING_TABLE_MARKERS)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(session, func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute one unit of work with retry on concurrency-related failures.

    func must do the whole unit including commit. Retries on
    OperationalError (deadlocks, locks) and StaleDataError; the session is
    rolled back before each retry. Exhaustion raises StorageError.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            session.rollback()
            if is_missing_table(exc) or attempt >= attempts - 1:
                raise StorageError("Storage temporarily unavailable, please retry") from exc
            time.sleep(backoff_base * (2 ** attempt))


def run_unit(session, func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    run_with_retry plus rollback on any other failure.

    Services own their transaction boundaries. Whatever func raises, the
    session is left rolled back.
    """
    try:
        return run_with_retry(session, func, attempts=attempts, backoff_base=backoff_base)
    except Exception:
        session.rollback()
        raise
