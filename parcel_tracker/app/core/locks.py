"""
Per-key asyncio locks.

Serializes work on one resource (a tracking ID) without blocking other
resources. Entries are created on demand and dropped once the resource is
gone, so the map only holds IDs that still exist.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class KeyedLocks:

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def __contains__(self, key: str) -> bool:
        return key in self._locks

    def locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """
        Acquire the lock for ``key``.

        A waiter whose lock was discarded while it waited retries on the
        current one, so two holders never run for the same key.
        """
        while True:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = asyncio.Lock()
            await lock.acquire()
            if self._locks.get(key) is lock:
                break
            lock.release()

        try:
            yield
        finally:
            lock.release()

    def discard(self, key: str) -> None:
        """Forget the lock for ``key``. Only call while holding it."""
        self._locks.pop(key, None)
