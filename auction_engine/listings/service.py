"""Listing admission, cancellation and lookup."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from ..catalog.gateway import CatalogGateway
from ..config import PricingConfig, SeasonConfig
from ..errors import (
    InvalidArgument,
    InvalidInitialPrice,
    ListingNotFound,
    NotCommercialized,
    OutOfSeason,
    ProductNotFound,
)
from ..storage import AuctionStorage
from ..storage.budget import within_budget
from ..timing.timestamps import coerce_timestamp, format_timestamp
from .fsm import ListingEvent, transition
from .models import Bid, Listing, to_money
from .pricing import initial_price_floor

logger = logging.getLogger(__name__)


@dataclass
class ListingService:
    storage: AuctionStorage
    catalog: CatalogGateway
    season: SeasonConfig
    pricing: PricingConfig
    timeout_ms: int = 2000

    async def create_listing(
        self,
        item_id: int | None,
        expiry: datetime | str | None = None,
        initial_price: Any = None,
    ) -> Listing:
        if item_id is None:
            raise InvalidArgument("item_id cannot be null")
        return await within_budget(
            self._create(item_id, expiry, initial_price),
            self.timeout_ms,
            "create_listing",
        )

    async def _create(self, item_id: int, expiry: Any, initial_price: Any) -> Listing:
        product = await self.catalog.get_product(item_id)
        if product is None:
            raise ProductNotFound(item_id)
        if not product.is_commercialized:
            raise NotCommercialized(f"product {item_id} is not currently commercialized")

        expiry_at = self._resolve_expiry(expiry)
        floor = initial_price_floor(product, self.pricing)
        if initial_price is None:
            price = floor
        else:
            price = to_money(initial_price)
            if price < floor or price >= product.list_price:
                raise InvalidInitialPrice(
                    f"initial price {price} must be at least {floor} "
                    f"and below the list price {product.list_price}"
                )

        listing = Listing(item_id=item_id, expiry=expiry_at, initial_price=price)
        async with self.storage.item_scope(item_id) as scope:
            await scope.insert_listing(listing)
        logger.info(
            "listed item %s expiry=%s initial_price=%s",
            item_id,
            format_timestamp(expiry_at),
            price,
        )
        return listing

    def _resolve_expiry(self, expiry: Any) -> datetime:
        if expiry is None:
            return self.season.default_expiry
        expiry_at = coerce_timestamp(expiry)
        if not self.season.listing_start <= expiry_at <= self.season.listing_end:
            raise OutOfSeason(
                f"expiry must be between {format_timestamp(self.season.listing_start)} "
                f"and {format_timestamp(self.season.listing_end)}"
            )
        return expiry_at

    async def cancel_listing(self, item_id: int | None) -> Listing:
        if item_id is None:
            raise InvalidArgument("item_id cannot be null")
        return await within_budget(self._cancel(item_id), self.timeout_ms, "cancel_listing")

    async def _cancel(self, item_id: int) -> Listing:
        async with self.storage.item_scope(item_id) as scope:
            if scope.listing is None:
                raise ListingNotFound(item_id)
            new_status = transition(scope.listing.status, ListingEvent.CANCELLED)
            await scope.set_status(new_status)
            listing = scope.listing
        logger.info("cancelled listing for item %s", item_id)
        return listing

    async def get_listing(self, item_id: int) -> tuple[Listing, list[Bid]]:
        listing = await self.storage.get_listing(item_id)
        if listing is None:
            raise ListingNotFound(item_id)
        return listing, await self.storage.list_bids(item_id)

    @staticmethod
    def highest_amount(bids: list[Bid]) -> Decimal | None:
        return max((bid.amount for bid in bids), default=None)
