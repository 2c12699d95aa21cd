"""Per-key single-writer guard for in-flight clock-ins."""

import asyncio
from contextlib import asynccontextmanager
from typing import Hashable

from .errors import ClockInInProgress


class KeyedLockRegistry:
    """
    Hands out one asyncio.Lock per key and refuses contended acquisitions.

    A second caller for a key that is already held is rejected immediately
    rather than queued. Locks are dropped once released.
    """

    def __init__(self):
        self._locks: dict[Hashable, asyncio.Lock] = {}

    def is_held(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, key: Hashable):
        lock = self._locks.setdefault(key, asyncio.Lock())
        if lock.locked():
            raise ClockInInProgress(f"A clock-in for {key} is already in progress")

        await lock.acquire()
        try:
            yield
        finally:
            lock.release()
            if not lock.locked() and self._locks.get(key) is lock:
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
