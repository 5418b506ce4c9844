# Overview: Transaction boundaries and retry for service operations.

from __future__ import annotations

import time
from functools import wraps

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


class ConcurrentInsertError(Exception):
    """Another transaction committed the same unique row first."""


RETRYABLE_ERRORS = (OperationalError, StaleDataError, ConcurrentInsertError)


def _attempts(attempts: int | None) -> int:
    if attempts is not None:
        return attempts
    return int(current_app.config.get("RETRY_ATTEMPTS", 3))


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks), StaleDataError
    (optimistic locking conflicts) and ConcurrentInsertError (lost a race
    to create the same row). Does not commit.
    """
    attempts = _attempts(attempts)
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Retrying %s after %s (attempt %d/%d)",
                getattr(func, "__qualname__", func), type(exc).__name__, attempt + 1, attempts,
            )
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def run_in_transaction(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Run func and commit it as one unit of work.

    The whole operation (reads, conditional updates, inserts, commit) is
    re-run on a concurrency failure, never just the commit, so a retry always
    starts from freshly read state. Any other exception rolls the session back
    and propagates unchanged.
    """
    @wraps(func)
    def _op():
        try:
            result = func()
            db.session.commit()
        except RETRYABLE_ERRORS:
            raise
        except Exception:
            db.session.rollback()
            raise
        return result

    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)
