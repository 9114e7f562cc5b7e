"""
Cooperative cancellation and per-key serialization for sync runs.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager

from ctsync.core.exceptions import SyncCancelledError


class CancellationToken:
    """
    Cooperative cancellation flag.

    Thread-safe, so a signal handler or another thread can cancel a run that
    is executing on an event loop.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: str | None = None

    def cancel(self, reason: str | None = None) -> None:
        self.reason = reason
        self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise SyncCancelledError(f"Sync cancelled{f': {self.reason}' if self.reason else ''}")


class KeyedLocks:
    """One asyncio.Lock per type key; keys are always acquired in sorted order."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, keys: Iterable[str]) -> AsyncIterator[None]:
        """Acquire the locks of all ``keys``; released in reverse order."""
        acquired: list[asyncio.Lock] = []
        try:
            for key in sorted(set(keys)):
                lock = self.lock_for(key)
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
