# Overview: Transaction helpers shared by the service layer (locking, retries, savepoints).

from __future__ import annotations

import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Any other exception rolls the session
    back before propagating, so a failed operation never leaves half-applied
    changes behind for the next one.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise


@contextmanager
def best_effort(description: str):
    """
    Run a side effect inside a SAVEPOINT; failures are logged and discarded.

    The surrounding transaction stays usable whatever happens inside.
    """
    try:
        with db.session.begin_nested():
            yield
    except Exception:
        current_app.logger.warning("%s failed; continuing", description, exc_info=True)
