# Overview: Service-layer operations for concurrency; per-product locking and bounded retry.

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import Iterable

from flask import current_app, has_app_context
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import LedgerError, InternalError, TransientFailure


class LockTimeout(Exception):
    """A product lock could not be acquired within the timeout."""

    def __init__(self, product_id: int, timeout: float):
        super().__init__(f"timed out after {timeout}s waiting for product {product_id}")
        self.product_id = product_id
        self.timeout = timeout


class ProductLockRegistry:
    """
    Keyed mutual exclusion over product ids.

    Operations on the same product are serialized; operations on different
    products proceed in parallel. Multi-product holders always acquire in
    ascending id order so overlapping sales cannot deadlock.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[int, threading.Lock] = {}

    def _lock_for(self, product_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(product_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[product_id] = lock
            return lock

    @contextmanager
    def hold(self, product_ids: Iterable[int], *, timeout: float):
        acquired: list[threading.Lock] = []
        try:
            for product_id in sorted(set(product_ids)):
                lock = self._lock_for(product_id)
                if not lock.acquire(timeout=timeout):
                    raise LockTimeout(product_id, timeout)
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


def get_product_locks() -> ProductLockRegistry:
    """The lock registry of the current Flask app."""
    return current_app.extensions["product_locks"]


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    populate_existing() makes sure the locked row is re-read, not served from
    the session's identity map.
    """
    return query.populate_existing().with_for_update()


RETRYABLE = (OperationalError, StaleDataError, LockTimeout)


def run_with_retry(session, func, *, attempts: int = 3, backoff_base: float = 0.05):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks), StaleDataError
    (optimistic locking conflicts) and LockTimeout. Once the budget is spent
    the failure is reported as TransientFailure. Domain errors are never
    retried. The session is rolled back on every failure, so a rejected
    operation leaves no partial state behind.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except RETRYABLE as exc:
            session.rollback()
            last_exc = exc
            if has_app_context():
                current_app.logger.warning(
                    "Ledger contention (attempt %d/%d): %s", attempt + 1, attempts, exc
                )
            if attempt < attempts - 1:
                time.sleep(backoff_base * (2 ** attempt))
        except LedgerError:
            session.rollback()
            raise
        except SQLAlchemyError as exc:
            session.rollback()
            raise InternalError("storage failure", details={"cause": exc.__class__.__name__}) from exc

    details = {"attempts": attempts}
    if isinstance(last_exc, LockTimeout):
        details["product_id"] = last_exc.product_id
    raise TransientFailure(
        "operation could not be completed due to contention; retry", details=details
    ) from last_exc
