"""
Module: cafe_kernel.db.locks
Responsibility: Logical locks keyed by arbitrary hashable keys, used to
    serialize payroll runs for one (branch, period).
Architecture position: Kernel > DB.  Used by module services that must not
    run the same batch twice concurrently.

Invariants enforced:
    - At most one holder per key inside the process.
    - On PostgreSQL the key is additionally taken as a transaction-scoped
      advisory lock, so holders in other processes serialize as well.
    - Acquisition is bounded: callers pass a timeout and receive False
      instead of blocking indefinitely.

Failure modes:
    - acquire() returns False on timeout; the caller raises its own typed
      conflict error.
"""

from __future__ import annotations

import hashlib
import threading
from collections.abc import Hashable, Iterator
from contextlib import contextmanager

from sqlalchemy import text
from sqlalchemy.orm import Session

from cafe_kernel.logging_config import get_logger

logger = get_logger("db.locks")


class KeyedLockRegistry:
    """In-process registry of one ``threading.Lock`` per key."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Hashable, threading.Lock] = {}

    def _lock_for(self, key: Hashable) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def acquire(self, key: Hashable, timeout: float) -> bool:
        acquired = self._lock_for(key).acquire(timeout=timeout)
        logger.debug(
            "keyed_lock_acquire",
            extra={"lock_key": str(key), "acquired": acquired},
        )
        return acquired

    def release(self, key: Hashable) -> None:
        self._lock_for(key).release()

    def is_locked(self, key: Hashable) -> bool:
        return self._lock_for(key).locked()

    @contextmanager
    def hold(self, key: Hashable, timeout: float) -> Iterator[bool]:
        """Yield whether the lock was acquired; release on exit if it was."""
        acquired = self.acquire(key, timeout)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(key)


# Process-wide registry shared by all services
default_lock_registry = KeyedLockRegistry()


def advisory_key(*parts: object) -> int:
    """Stable signed 64-bit key for pg_advisory_xact_lock."""
    digest = hashlib.sha256("|".join(str(p) for p in parts).encode()).digest()
    return int.from_bytes(digest[:8], "big", signed=True)


def acquire_advisory_xact_lock(session: Session, *parts: object) -> None:
    """Take a PostgreSQL transaction-scoped advisory lock; no-op elsewhere.

    Released automatically at commit or rollback.
    """
    if session.get_bind().dialect.name != "postgresql":
        return
    session.execute(
        text("SELECT pg_advisory_xact_lock(:key)"),
        {"key": advisory_key(*parts)},
    )
