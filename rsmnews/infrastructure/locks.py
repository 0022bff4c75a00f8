"""
Per-key async mutual exclusion.

Two independent lock domains use this: the outbound queue (keyed by
destination address) and the inbound command dispatcher (keyed by sender
phone). Locks are advisory, in-process and owned by the instance that created
the KeyedLock; nothing survives a restart.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Hashable
from contextlib import asynccontextmanager

from rsmnews.observability.logging import get_logger

logger = get_logger(__name__)


class KeyedLock:
    """A lazily created asyncio.Lock per key.

    Waiters on the same key are served in FIFO order (asyncio.Lock semantics).
    A key's lock is dropped from the map once no holder or waiter remains, so
    the map only grows with the number of keys currently in use.
    """

    def __init__(self, name: str = "keyed") -> None:
        self.name = name
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._users: dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        """Hold the lock for key for the duration of the block.

        Released on every exit path, including exceptions and cancellation.
        """
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._users[key] = self._users.get(key, 0) + 1

        if lock.locked():
            logger.debug("%s lock busy for %s, waiting", self.name, key)

        try:
            async with lock:
                yield
        finally:
            remaining = self._users[key] - 1
            if remaining:
                self._users[key] = remaining
            else:
                del self._users[key]
                del self._locks[key]

    def is_held(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
