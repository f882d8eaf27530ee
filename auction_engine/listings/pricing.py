"""Pricing rules shared by listing admission and bidding."""

from __future__ import annotations

from decimal import Decimal

from ..config import PricingConfig
from .models import Product, to_money


def initial_price_floor(product: Product, pricing: PricingConfig) -> Decimal:
    ratio = pricing.manufactured_ratio if product.manufactured else pricing.purchased_ratio
    return to_money(product.list_price * ratio)


def bid_floor(initial_price: Decimal, highest_bid: Decimal | None) -> Decimal:
    if highest_bid is None:
        return initial_price
    return max(initial_price, highest_bid)
