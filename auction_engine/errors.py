"""Typed rejections raised by the auction engine.

Each error carries a ``kind`` tag that the HTTP layer and the CLI surface
verbatim, so callers can branch on the tag rather than on message text.
"""

from __future__ import annotations


class AuctionError(ValueError):
    kind = "AuctionError"


class InvalidArgument(AuctionError):
    kind = "InvalidArgument"


class NotFound(AuctionError):
    kind = "NotFound"


class ListingNotFound(NotFound):
    def __init__(self, item_id: int) -> None:
        super().__init__(f"item {item_id} is not listed for auction")
        self.item_id = item_id


class CustomerNotFound(NotFound):
    def __init__(self, customer_id: int) -> None:
        super().__init__(f"customer {customer_id} does not exist")
        self.customer_id = customer_id


class ProductNotFound(NotFound):
    def __init__(self, item_id: int) -> None:
        super().__init__(f"product {item_id} does not exist in the catalog")
        self.item_id = item_id


class NotCommercialized(AuctionError):
    kind = "NotCommercialized"


class InvalidInitialPrice(AuctionError):
    kind = "InvalidInitialPrice"


class ListingCancelled(AuctionError):
    kind = "ListingCancelled"


class BidTooLow(AuctionError):
    kind = "BidTooLow"


class OutOfSeason(AuctionError):
    kind = "OutOfSeason"


class Expired(AuctionError):
    kind = "Expired"


class BidAtOrAboveCeiling(AuctionError):
    kind = "BidAtOrAboveCeiling"


class AlreadyTerminal(AuctionError):
    kind = "AlreadyTerminal"


class Conflict(AuctionError):
    kind = "Conflict"


class StoreTimeout(AuctionError):
    kind = "StoreTimeout"


class UpstreamUnavailable(AuctionError):
    kind = "UpstreamUnavailable"
