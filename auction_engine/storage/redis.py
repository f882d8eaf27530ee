"""Redis storage backend using redis-py asyncio client."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any, AsyncIterator

import orjson
from redis import asyncio as aioredis
from redis.exceptions import LockError

from ..errors import Conflict, ListingNotFound, StoreTimeout
from ..listings.fsm import ListingStatus
from ..listings.models import Bid, HistoryEntry, Listing

logger = logging.getLogger(__name__)


class _RedisItemScope:
    """Staged writes, flushed in one MULTI/EXEC while the item lock is held."""

    def __init__(self, storage: "RedisStorage", item_id: int, listing: Listing | None) -> None:
        self._storage = storage
        self.item_id = item_id
        self.listing = listing
        self._listing_dirty = False
        self._new_bids: list[Bid] = []

    async def list_bids(self) -> list[Bid]:
        return [*await self._storage.list_bids(self.item_id), *self._new_bids]

    async def highest_bid(self) -> Decimal | None:
        return max((bid.amount for bid in await self.list_bids()), default=None)

    async def latest_bid(self) -> Bid | None:
        if self._new_bids:
            return self._new_bids[-1]
        return await self._storage.latest_bid(self.item_id)

    async def insert_listing(self, listing: Listing) -> None:
        if self.listing is not None:
            raise Conflict(f"item {self.item_id} already has a listing")
        self.listing = listing
        self._listing_dirty = True

    async def set_status(self, status: ListingStatus) -> None:
        if self.listing is None:
            raise ListingNotFound(self.item_id)
        self.listing = self.listing.with_status(status)
        self._listing_dirty = True

    async def append_bid(self, bid: Bid) -> None:
        if self.listing is None:
            raise ListingNotFound(self.item_id)
        self._new_bids.append(bid)

    async def commit(self) -> None:
        if not self._listing_dirty and not self._new_bids:
            return
        storage = self._storage
        async with storage._redis.pipeline(transaction=True) as pipe:
            if self._listing_dirty and self.listing is not None:
                pipe.set(storage._listing_key(self.item_id), orjson.dumps(self.listing.to_record()))
                pipe.sadd(storage._index_key(), self.item_id)
            for bid in self._new_bids:
                pipe.rpush(storage._bids_key(self.item_id), orjson.dumps(bid.to_record()))
                pipe.sadd(storage._bidder_key(bid.bidder_id), self.item_id)
            await pipe.execute()


class RedisStorage:
    def __init__(
        self,
        *,
        url: str,
        prefix: str = "auction",
        lock_timeout_ms: int = 5000,
        lock_wait_ms: int = 2000,
    ) -> None:
        if not url:
            raise ValueError("redis url missing")
        self._redis = aioredis.from_url(url)
        self._prefix = prefix.rstrip(":")
        self._lock_timeout = lock_timeout_ms / 1000
        self._lock_wait = lock_wait_ms / 1000

    def _listing_key(self, item_id: int) -> str:
        return f"{self._prefix}:listing:{item_id}"

    def _bids_key(self, item_id: int) -> str:
        return f"{self._prefix}:bids:{item_id}"

    def _bidder_key(self, bidder_id: int) -> str:
        return f"{self._prefix}:bidder:{bidder_id}"

    def _lock_key(self, item_id: int) -> str:
        return f"{self._prefix}:lock:{item_id}"

    def _index_key(self) -> str:
        return f"{self._prefix}:listings"

    @asynccontextmanager
    async def item_scope(self, item_id: int) -> AsyncIterator[_RedisItemScope]:
        lock = self._redis.lock(
            self._lock_key(item_id),
            timeout=self._lock_timeout,
            blocking_timeout=self._lock_wait,
        )
        if not await lock.acquire():
            raise StoreTimeout(f"could not lock item {item_id}")
        try:
            scope = _RedisItemScope(self, item_id, await self.get_listing(item_id))
            yield scope
            # Once MULTI/EXEC is under way it runs to completion with the lock
            # held. A budget that expires mid-flush still surfaces as
            # StoreTimeout even though the write has landed.
            flush = asyncio.ensure_future(scope.commit())
            try:
                await asyncio.shield(flush)
            except asyncio.CancelledError:
                await flush
                raise
        finally:
            try:
                await lock.release()
            except LockError:
                logger.warning("lock for item %s expired before release", item_id)

    async def get_listing(self, item_id: int) -> Listing | None:
        raw = await self._redis.get(self._listing_key(item_id))
        if raw is None:
            return None
        return Listing.from_record(orjson.loads(raw))

    async def list_listings(self, status: ListingStatus | None = None) -> list[Listing]:
        item_ids = sorted(int(value) for value in await self._redis.smembers(self._index_key()))
        if not item_ids:
            return []
        values = await self._redis.mget([self._listing_key(item_id) for item_id in item_ids])
        listings = [Listing.from_record(orjson.loads(value)) for value in values if value]
        return [listing for listing in listings if status is None or listing.status is status]

    async def list_expired(self, now: datetime) -> list[Listing]:
        return [
            listing
            for listing in await self.list_listings(ListingStatus.ACTIVE)
            if listing.expiry <= now
        ]

    async def list_bids(self, item_id: int) -> list[Bid]:
        values = await self._redis.lrange(self._bids_key(item_id), 0, -1)
        return [Bid.from_record(orjson.loads(value)) for value in values]

    async def latest_bid(self, item_id: int) -> Bid | None:
        raw = await self._redis.lindex(self._bids_key(item_id), -1)
        return Bid.from_record(orjson.loads(raw)) if raw else None

    async def bid_history(
        self,
        bidder_id: int,
        start: datetime,
        end: datetime,
        status: ListingStatus | None = None,
    ) -> list[HistoryEntry]:
        entries: list[HistoryEntry] = []
        members: Any = await self._redis.smembers(self._bidder_key(bidder_id))
        for item_id in sorted(int(value) for value in members):
            listing = await self.get_listing(item_id)
            if listing is None:
                continue
            if status is not None and listing.status is not status:
                continue
            for bid in await self.list_bids(item_id):
                if bid.bidder_id == bidder_id and start <= bid.accepted_at <= end:
                    entries.append(
                        HistoryEntry(
                            item_id=bid.item_id,
                            bidder_id=bid.bidder_id,
                            amount=bid.amount,
                            accepted_at=bid.accepted_at,
                            status=listing.status,
                        )
                    )
        return entries

    async def close(self) -> None:
        await self._redis.aclose()
