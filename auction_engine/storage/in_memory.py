"""In-memory storage backend for listings and the bid ledger."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from typing import AsyncIterator

from ..errors import Conflict, ListingNotFound
from ..listings.fsm import ListingStatus
from ..listings.models import Bid, HistoryEntry, Listing
from .locks import ItemLockRegistry


class _InMemoryItemScope:
    """Writes are staged here and only reach the store on a clean exit."""

    def __init__(self, storage: "InMemoryStorage", item_id: int) -> None:
        self._storage = storage
        self.item_id = item_id
        self.listing: Listing | None = storage._listings.get(item_id)
        self._listing_dirty = False
        self._new_bids: list[Bid] = []

    def _bids(self) -> list[Bid]:
        return [*self._storage._bids.get(self.item_id, ()), *self._new_bids]

    async def list_bids(self) -> list[Bid]:
        return self._bids()

    async def highest_bid(self) -> Decimal | None:
        return max((bid.amount for bid in self._bids()), default=None)

    async def latest_bid(self) -> Bid | None:
        bids = self._bids()
        return bids[-1] if bids else None

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

    def commit(self) -> None:
        if self._listing_dirty and self.listing is not None:
            self._storage._listings[self.item_id] = self.listing
        if self._new_bids:
            self._storage._bids.setdefault(self.item_id, []).extend(self._new_bids)


class InMemoryStorage:
    def __init__(self) -> None:
        self._listings: dict[int, Listing] = {}
        self._bids: dict[int, list[Bid]] = {}
        self._locks = ItemLockRegistry()

    @asynccontextmanager
    async def item_scope(self, item_id: int) -> AsyncIterator[_InMemoryItemScope]:
        async with self._locks.hold(item_id):
            scope = _InMemoryItemScope(self, item_id)
            yield scope
            scope.commit()

    async def get_listing(self, item_id: int) -> Listing | None:
        return self._listings.get(item_id)

    async def list_listings(self, status: ListingStatus | None = None) -> list[Listing]:
        return [
            listing
            for listing in self._listings.values()
            if status is None or listing.status is status
        ]

    async def list_expired(self, now: datetime) -> list[Listing]:
        return [
            listing
            for listing in self._listings.values()
            if listing.status is ListingStatus.ACTIVE and listing.expiry <= now
        ]

    async def list_bids(self, item_id: int) -> list[Bid]:
        return list(self._bids.get(item_id, ()))

    async def latest_bid(self, item_id: int) -> Bid | None:
        bids = self._bids.get(item_id)
        return bids[-1] if bids else None

    async def bid_history(
        self,
        bidder_id: int,
        start: datetime,
        end: datetime,
        status: ListingStatus | None = None,
    ) -> list[HistoryEntry]:
        entries = []
        for item_id, bids in self._bids.items():
            listing = self._listings[item_id]
            if status is not None and listing.status is not status:
                continue
            for bid in bids:
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
        return None
