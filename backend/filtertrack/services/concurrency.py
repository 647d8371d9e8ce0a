# Overview: Per-unit serialization and retry helpers for ledger writes.

from __future__ import annotations

import threading
import time
from contextlib import contextmanager

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

"""
Two layers keep "read current state, write next state" atomic per unit:

- KeyedLockTable serializes scans of the same reference|serial inside one
  process. Different keys never wait on each other; there is no global lock.
- version_id_col on UnitRecord catches writers in other processes: the
  loser's flush raises StaleDataError, run_with_retry rolls back and the
  whole operation runs again from a fresh read.
"""

RETRYABLE_ERRORS = (OperationalError, StaleDataError)


class LockTimeoutError(TimeoutError):
    """Raised when a keyed lock cannot be acquired within the timeout."""

    def __init__(self, key: str, timeout: float | None):
        self.key = key
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout}s waiting for lock on {key}")


class _Slot:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class KeyedLockTable:
    """
    Arena of mutexes keyed by string, created on demand and dropped as soon
    as nobody holds or waits on them.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._slots: dict[str, _Slot] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._slots)

    @contextmanager
    def hold(self, key: str, timeout: float | None = None):
        with self._guard:
            slot = self._slots.get(key)
            if slot is None:
                slot = self._slots[key] = _Slot()
            slot.users += 1

        acquired = slot.lock.acquire(timeout=-1 if timeout is None else timeout)
        try:
            if not acquired:
                raise LockTimeoutError(key, timeout)
            yield
        finally:
            if acquired:
                slot.lock.release()
            with self._guard:
                slot.users -= 1
                if slot.users == 0 and self._slots.get(key) is slot:
                    del self._slots[key]


# Process-wide table for unit scans
unit_locks = KeyedLockTable()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1, retry_on=RETRYABLE_ERRORS):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (locks, busy database) and StaleDataError
    (optimistic locking conflicts) by default.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
