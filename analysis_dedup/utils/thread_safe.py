"""Async-safe utilities shared by the dedup service.

This module provides the per-key advisory locks used to keep at most one
generation in flight per parameter hash, plus a small counter for service
statistics.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Tuple

from analysis_dedup.utils.logger import log_debug


class KeyedLockRegistry:
    """Hand out one ``asyncio.Lock`` per key, dropping it once unused.

    Locks are reference counted so the registry only holds entries for keys
    that currently have a holder or a waiter.
    """

    def __init__(self):
        self._locks: Dict[str, Tuple[asyncio.Lock, int]] = {}
        self._guard = asyncio.Lock()

    async def _acquire_entry(self, key: str) -> asyncio.Lock:
        async with self._guard:
            lock, refs = self._locks.get(key, (None, 0))
            if lock is None:
                lock = asyncio.Lock()
            self._locks[key] = (lock, refs + 1)
            return lock

    async def _release_entry(self, key: str) -> None:
        async with self._guard:
            lock, refs = self._locks[key]
            if refs <= 1:
                del self._locks[key]
            else:
                self._locks[key] = (lock, refs - 1)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Hold the lock for ``key`` for the duration of the block."""
        lock = await self._acquire_entry(key)
        try:
            if lock.locked():
                log_debug("Waiting for in-flight generation", key=key)
            async with lock:
                yield
        finally:
            await self._release_entry(key)

    def is_locked(self, key: str) -> bool:
        """Check whether ``key`` currently has a holder."""
        entry = self._locks.get(key)
        return bool(entry and entry[0].locked())

    def __len__(self) -> int:
        return len(self._locks)


class ThreadSafeCounter:
    """Thread-safe counter for tracking statistics."""

    def __init__(self):
        self._count = 0
        self._lock = asyncio.Lock()

    async def increment(self, amount: int = 1) -> int:
        """Increment counter and return new value."""
        async with self._lock:
            self._count += amount
            return self._count

    async def get(self) -> int:
        """Get current count."""
        async with self._lock:
            return self._count

    async def reset(self):
        """Reset counter to zero."""
        async with self._lock:
            self._count = 0
