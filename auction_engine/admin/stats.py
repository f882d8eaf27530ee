"""Operational stats endpoint."""

from __future__ import annotations

from collections import Counter
from typing import Any

from fastapi import APIRouter, Depends, Request

from ..listings.models import format_money
from ..storage import AuctionStorage

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_storage(request: Request) -> AuctionStorage:
    return request.app.state.storage


@router.get("/stats")
async def stats(storage: AuctionStorage = Depends(_get_storage)) -> dict[str, Any]:
    listings = await storage.list_listings()
    status_distribution: Counter[str] = Counter()
    bids_by_bidder: Counter[int] = Counter()
    total_bids = 0
    bidless = 0
    highest_bids: dict[str, str] = {}

    for listing in listings:
        status_distribution[listing.status.value] += 1
        bids = await storage.list_bids(listing.item_id)
        total_bids += len(bids)
        if not bids:
            bidless += 1
            continue
        for bid in bids:
            bids_by_bidder[bid.bidder_id] += 1
        highest_bids[str(listing.item_id)] = format_money(max(bid.amount for bid in bids))

    total_listings = len(listings)
    return {
        "total_listings": total_listings,
        "total_bids": total_bids,
        "no_bid_rate": round(bidless / total_listings, 4) if total_listings else 0.0,
        "status_distribution": dict(status_distribution),
        "bids_by_bidder": {str(bidder): count for bidder, count in bids_by_bidder.items()},
        "highest_bids": highest_bids,
    }
