# Overview: Optimistic concurrency for carts, stock and orders; re-run a unit of work on write conflicts.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


RETRYABLE = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    SELECT ... FOR UPDATE on databases that support it.

    SQLite ignores the clause; there the version_id check on Cart,
    Inventory, Product and Order is what catches a lost update.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Call func(), retrying when a concurrent writer got there first.

    A StaleDataError means another request bumped version_id between our
    read and our flush; an OperationalError covers lock timeouts. The
    session is rolled back before each retry, so func must load the rows
    it mutates itself rather than close over already-loaded instances.
    """
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except RETRYABLE as exc:
            db.session.rollback()
            if attempt == attempts:
                current_app.logger.warning(
                    "Write conflict in %s persisted after %d attempts",
                    getattr(func, "__qualname__", func), attempts,
                )
                raise
            current_app.logger.info(
                "Write conflict in %s (%s); retrying", getattr(func, "__qualname__", func), type(exc).__name__,
            )
            time.sleep(backoff_base * (2 ** (attempt - 1)))
