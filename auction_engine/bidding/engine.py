"""Bid admission against a single item's listing and ledger."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from ..catalog.gateway import CatalogGateway
from ..config import PricingConfig, SeasonConfig
from ..customers.directory import CustomerDirectory
from ..errors import (
    AlreadyTerminal,
    AuctionError,
    BidAtOrAboveCeiling,
    BidTooLow,
    CustomerNotFound,
    Expired,
    InvalidArgument,
    ListingCancelled,
    ListingNotFound,
    OutOfSeason,
    ProductNotFound,
)
from ..listings.fsm import ListingStatus
from ..listings.models import Bid, Listing, to_money
from ..listings.pricing import bid_floor
from ..storage import AuctionStorage
from ..storage.budget import within_budget
from ..timing.clock import Clock
from ..timing.timestamps import format_timestamp

logger = logging.getLogger(__name__)


def assert_open_for_bids(listing: Listing) -> None:
    status = listing.status
    if status is ListingStatus.ACTIVE:
        return
    if status is ListingStatus.CANCELLED:
        raise ListingCancelled(f"bidding is not allowed on cancelled item {listing.item_id}")
    if status is ListingStatus.SOLD:
        raise AlreadyTerminal(f"auction for item {listing.item_id} is already sold")
    raise AssertionError(f"unhandled listing status {status!r}")


@dataclass
class BiddingEngine:
    """Validates and appends bids.

    The whole read-floor / compare / append sequence runs inside the item's
    exclusive scope, so concurrent bids on one item are serialized while bids
    on different items never wait on each other.
    """

    storage: AuctionStorage
    catalog: CatalogGateway
    customers: CustomerDirectory
    clock: Clock
    season: SeasonConfig
    pricing: PricingConfig
    timeout_ms: int = 2000

    async def place_bid(
        self,
        item_id: int | None,
        bidder_id: int | None,
        amount: Any = None,
    ) -> Bid:
        if item_id is None or bidder_id is None:
            raise InvalidArgument("item_id and bidder_id cannot be null")
        offered = to_money(amount) if amount is not None else None
        try:
            bid = await within_budget(
                self._admit(item_id, bidder_id, offered),
                self.timeout_ms,
                "place_bid",
            )
        except AuctionError as exc:
            logger.info(
                "bid rejected item=%s bidder=%s kind=%s: %s",
                item_id,
                bidder_id,
                exc.kind,
                exc,
            )
            raise
        logger.info(
            "bid accepted item=%s bidder=%s amount=%s at=%s",
            item_id,
            bidder_id,
            bid.amount,
            format_timestamp(bid.accepted_at),
        )
        return bid

    async def _admit(self, item_id: int, bidder_id: int, offered: Decimal | None) -> Bid:
        async with self.storage.item_scope(item_id) as scope:
            listing = scope.listing
            if listing is None:
                raise ListingNotFound(item_id)
            assert_open_for_bids(listing)
            if not await self.customers.exists(bidder_id):
                raise CustomerNotFound(bidder_id)

            floor = bid_floor(listing.initial_price, await scope.highest_bid())
            minimum = floor + self.pricing.min_increment
            if offered is None:
                amount = minimum
            elif offered < minimum:
                raise BidTooLow(
                    f"bid {offered} must be at least {self.pricing.min_increment} "
                    f"above the current floor {floor}"
                )
            else:
                amount = offered

            now = self.clock.now()
            if not self.season.bidding_start <= now <= self.season.bidding_end:
                raise OutOfSeason(
                    f"bidding is only allowed between {format_timestamp(self.season.bidding_start)} "
                    f"and {format_timestamp(self.season.bidding_end)}"
                )
            if now > listing.expiry:
                raise Expired(
                    f"auction for item {item_id} expired at {format_timestamp(listing.expiry)}"
                )

            product = await self.catalog.get_product(item_id)
            if product is None:
                raise ProductNotFound(item_id)
            if amount >= product.list_price:
                raise BidAtOrAboveCeiling(
                    f"bid {amount} reaches the list price {product.list_price}"
                )

            latest = await scope.latest_bid()
            accepted_at = now if latest is None else max(now, latest.accepted_at)
            bid = Bid(
                item_id=item_id,
                bidder_id=bidder_id,
                amount=amount,
                accepted_at=accepted_at,
            )
            await scope.append_bid(bid)
        return bid
