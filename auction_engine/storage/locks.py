"""Per-item lock registry for single-process backends."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class ItemLockRegistry:
    """Hands out one ``asyncio.Lock`` per item id.

    Locks are created on first use and dropped once no task holds or waits on
    them, so the registry stays proportional to the number of items in flight.
    """

    def __init__(self) -> None:
        self._locks: dict[int, asyncio.Lock] = {}
        self._waiters: dict[int, int] = {}

    @asynccontextmanager
    async def hold(self, item_id: int) -> AsyncIterator[None]:
        lock = self._locks.get(item_id)
        if lock is None:
            lock = self._locks[item_id] = asyncio.Lock()
        self._waiters[item_id] = self._waiters.get(item_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[item_id] -= 1
            if not self._waiters[item_id]:
                del self._waiters[item_id]
                self._locks.pop(item_id, None)

    def __len__(self) -> int:
        return len(self._locks)
