"""Storage backend factory."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import AsyncContextManager, Protocol

from ..config import ServerConfig
from ..listings.fsm import ListingStatus
from ..listings.models import Bid, HistoryEntry, Listing
from .in_memory import InMemoryStorage
from .postgres import PostgresStorage
from .redis import RedisStorage


class ItemScope(Protocol):
    """Exclusive unit of work over one item's listing and bids.

    Nothing written through the scope is visible to other readers until the
    scope exits without an exception; any exception discards the writes.
    """

    item_id: int
    listing: Listing | None

    async def list_bids(self) -> list[Bid]: ...

    async def highest_bid(self) -> Decimal | None: ...

    async def latest_bid(self) -> Bid | None: ...

    async def insert_listing(self, listing: Listing) -> None: ...

    async def set_status(self, status: ListingStatus) -> None: ...

    async def append_bid(self, bid: Bid) -> None: ...


class AuctionStorage(Protocol):
    def item_scope(self, item_id: int) -> AsyncContextManager[ItemScope]: ...

    async def get_listing(self, item_id: int) -> Listing | None: ...

    async def list_listings(self, status: ListingStatus | None = None) -> list[Listing]: ...

    async def list_expired(self, now: datetime) -> list[Listing]: ...

    async def list_bids(self, item_id: int) -> list[Bid]: ...

    async def latest_bid(self, item_id: int) -> Bid | None: ...

    async def bid_history(
        self,
        bidder_id: int,
        start: datetime,
        end: datetime,
        status: ListingStatus | None = None,
    ) -> list[HistoryEntry]: ...

    async def close(self) -> None: ...


def build_storage(config: ServerConfig) -> AuctionStorage:
    backend = config.store.backend
    options = dict(config.store.options)
    if backend == "in_memory":
        return InMemoryStorage()
    if backend == "redis":
        return RedisStorage(**options)
    if backend == "postgres":
        return PostgresStorage(**options)
    raise ValueError(f"unknown storage backend {backend}")
