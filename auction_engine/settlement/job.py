"""Batch settlement of expired auctions."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from ..catalog.gateway import CatalogGateway
from ..listings.fsm import ListingEvent, ListingStatus, transition
from ..listings.models import Listing, SettlementRow
from ..storage import AuctionStorage
from ..storage.budget import within_budget
from ..timing.clock import Clock
from ..timing.timestamps import format_timestamp

logger = logging.getLogger(__name__)


@dataclass
class SettlementResult:
    settled_at: datetime
    transitions: list[tuple[int, ListingStatus]] = field(default_factory=list)
    rows: list[SettlementRow] = field(default_factory=list)


@dataclass
class SettlementJob:
    storage: AuctionStorage
    catalog: CatalogGateway
    clock: Clock
    timeout_ms: int = 2000

    async def run(self, now: datetime | None = None) -> SettlementResult:
        settled_at = now or self.clock.now()
        transitions = await self.settle(settled_at)
        return SettlementResult(
            settled_at=settled_at,
            transitions=transitions,
            rows=await self.report(),
        )

    async def settle(self, now: datetime | None = None) -> list[tuple[int, ListingStatus]]:
        """Close every Active listing whose expiry is at or before *now*.

        An expired listing becomes Sold when it has no bids or its best bid is
        below the catalog list price. Listings already terminal are never
        selected, so repeated passes do not transition anything twice.
        """
        now = now or self.clock.now()
        transitions: list[tuple[int, ListingStatus]] = []
        for candidate in await self.storage.list_expired(now):
            status = await within_budget(
                self._settle_item(candidate.item_id, now),
                self.timeout_ms,
                f"settle item {candidate.item_id}",
            )
            if status is not None:
                transitions.append((candidate.item_id, status))
        logger.info(
            "settlement at %s transitioned %d listing(s)",
            format_timestamp(now),
            len(transitions),
        )
        return transitions

    async def _settle_item(self, item_id: int, now: datetime) -> ListingStatus | None:
        async with self.storage.item_scope(item_id) as scope:
            listing = scope.listing
            if listing is None or listing.status is not ListingStatus.ACTIVE:
                return None
            if listing.expiry > now:
                return None
            product = await self.catalog.get_product(item_id)
            if product is None:
                logger.warning("skipping settlement of item %s: not in catalog", item_id)
                return None
            best_bid = await scope.highest_bid()
            if best_bid is not None and best_bid >= product.list_price:
                return None
            new_status = transition(listing.status, ListingEvent.SETTLED)
            await scope.set_status(new_status)
        logger.info("item %s settled as %s (best bid %s)", item_id, new_status.value, best_bid)
        return new_status

    async def report(self) -> list[SettlementRow]:
        """One row per non-cancelled listing with its most recent bid."""
        rows = []
        for listing in await self.storage.list_listings():
            if not _reportable(listing):
                continue
            latest = await self.storage.latest_bid(listing.item_id)
            rows.append(
                SettlementRow(
                    item_id=listing.item_id,
                    expiry=listing.expiry,
                    initial_price=listing.initial_price,
                    status=listing.status,
                    bidder_id=latest.bidder_id if latest else None,
                    amount=latest.amount if latest else None,
                    accepted_at=latest.accepted_at if latest else None,
                )
            )
        return rows


def _reportable(listing: Listing) -> bool:
    status = listing.status
    if status is ListingStatus.CANCELLED:
        return False
    if status is ListingStatus.ACTIVE or status is ListingStatus.SOLD:
        return True
    raise AssertionError(f"unhandled listing status {status!r}")
