"""Bid history lookups for a single customer."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, AsyncIterator

from ..errors import InvalidArgument
from ..listings.fsm import ListingStatus
from ..listings.models import HistoryEntry
from ..storage import AuctionStorage
from ..timing.timestamps import coerce_timestamp


@dataclass(frozen=True)
class BidHistory:
    """Lazy view over a customer's bids.

    Nothing is read until iteration starts, and every new iteration queries
    the store again, so the same object can be consumed repeatedly.
    """

    storage: AuctionStorage
    customer_id: int
    start: datetime
    end: datetime
    active_only: bool = True

    def __aiter__(self) -> AsyncIterator[HistoryEntry]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[HistoryEntry]:
        status = ListingStatus.ACTIVE if self.active_only else None
        entries = await self.storage.bid_history(self.customer_id, self.start, self.end, status)
        for entry in entries:
            yield entry

    async def collect(self) -> list[HistoryEntry]:
        return [entry async for entry in self]


@dataclass
class HistoryService:
    storage: AuctionStorage

    def list_history(
        self,
        customer_id: int | None,
        start: Any,
        end: Any,
        active_only: bool = True,
    ) -> BidHistory:
        if customer_id is None:
            raise InvalidArgument("customer_id cannot be null")
        if start is None or end is None:
            raise InvalidArgument("start and end are required")
        return BidHistory(
            storage=self.storage,
            customer_id=customer_id,
            start=coerce_timestamp(start),
            end=coerce_timestamp(end),
            active_only=active_only,
        )
