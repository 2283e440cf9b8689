# Overview: Row locking and retry helpers shared by the order and payment services.

from __future__ import annotations

import time
from typing import Callable, TypeVar

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

T = TypeVar("T")

# Lock waits, "database is locked" and version_id mismatches
RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    SELECT ... FOR UPDATE on the given query.

    NOTE: SQLite has no row locks and ignores this; there the conditional
    UPDATEs and version_id columns carry the guarantees.
    """
    return query.with_for_update()


def run_with_retry(unit_of_work: Callable[[], T], *, attempts: int = 3, backoff_base: float = 0.1) -> T:
    """
    Run `unit_of_work` (which commits itself) and retry it on store contention.

    The session is rolled back before every retry and before any other
    exception propagates, so callers never see a half-applied transaction.
    Backoff doubles per attempt: 0.1s, 0.2s, ...
    """
    for attempt in range(1, attempts + 1):
        try:
            return unit_of_work()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt == attempts:
                raise
            current_app.logger.warning(
                "Retrying after %s (attempt %s of %s)", type(exc).__name__, attempt, attempts,
            )
            time.sleep(backoff_base * 2 ** (attempt - 1))
        except Exception:
            db.session.rollback()
            raise
    raise RuntimeError("run_with_retry needs at least one attempt")
