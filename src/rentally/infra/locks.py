"""Per-resource locks for the reservation gate.

Two implementations of ``LockPort``:

- PgAdvisoryLock: transaction-scoped PostgreSQL advisory lock. The lock is
  released automatically on commit or rollback, so the callback and every
  store call it makes run inside the same transaction (see ambient_txn).
- InProcessLock: mutex map for single-node deployments and tests.
"""

from __future__ import annotations

import threading
from typing import Callable, TypeVar

from psycopg2 import errors as pg_errors

from rentally.infra.db import ambient_txn, set_local_timeouts
from rentally.infra.settings import Settings, get_settings

T = TypeVar("T")

# First key of pg_advisory_xact_lock(int, int); reserved for resource locks
RESOURCE_LOCK_NAMESPACE = 1


class LockTimeoutError(Exception):
    """Lock (or statement) did not complete within its bound. Retryable."""

    def __init__(self, resource_id: int, message: str | None = None) -> None:
        self.resource_id = resource_id
        super().__init__(message or f"timed out waiting for resource {resource_id}")


class PgAdvisoryLock:
    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings

    @property
    def settings(self) -> Settings:
        return self._settings or get_settings()

    def with_resource_lock(self, resource_id: int, fn: Callable[[], T]) -> T:
        """Run ``fn`` holding the advisory lock for ``resource_id``.

        Raises:
            LockTimeoutError: If the lock or a statement exceeds its timeout.
        """
        settings = self.settings
        try:
            with ambient_txn() as cur:
                set_local_timeouts(
                    cur,
                    lock_timeout_ms=settings.lock_timeout_ms,
                    statement_timeout_ms=settings.statement_timeout_ms,
                )
                cur.execute(
                    "SELECT pg_advisory_xact_lock(%s, %s)",
                    (RESOURCE_LOCK_NAMESPACE, resource_id),
                )
                return fn()
        except (pg_errors.LockNotAvailable, pg_errors.QueryCanceled) as e:
            raise LockTimeoutError(resource_id) from e


class InProcessLock:
    """Mutex per resource id, created on first use."""

    def __init__(self, timeout_s: float | None = None) -> None:
        self._timeout_s = timeout_s
        self._guard = threading.Lock()
        self._locks: dict[int, threading.Lock] = {}

    def _lock_for(self, resource_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(resource_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[resource_id] = lock
            return lock

    def with_resource_lock(self, resource_id: int, fn: Callable[[], T]) -> T:
        lock = self._lock_for(resource_id)
        timeout = -1 if self._timeout_s is None else self._timeout_s
        if not lock.acquire(timeout=timeout):
            raise LockTimeoutError(resource_id)
        try:
            return fn()
        finally:
            lock.release()
