"""Time budget for store-backed operations."""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from ..errors import StoreTimeout

T = TypeVar("T")


async def within_budget(operation: Awaitable[T], timeout_ms: int, name: str) -> T:
    """Await *operation*, cancelling it once *timeout_ms* elapses.

    Cancellation unwinds the item scope, which discards staged writes or rolls
    the transaction back, so a timed-out operation never commits partially.
    The one exception is a Redis flush that has already started: it finishes,
    so the caller may see StoreTimeout for a write that did land.
    """
    try:
        return await asyncio.wait_for(operation, timeout_ms / 1000)
    except asyncio.TimeoutError as exc:
        raise StoreTimeout(f"{name} exceeded its {timeout_ms}ms budget") from exc
