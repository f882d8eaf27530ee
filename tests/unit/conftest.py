"""Shared fixtures: an in-memory engine pinned to the 2014 auction season."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from auction_engine.bidding.engine import BiddingEngine
from auction_engine.catalog.gateway import StaticCatalog
from auction_engine.config import parse_server_config
from auction_engine.customers.directory import StaticCustomerDirectory
from auction_engine.history.query import HistoryService
from auction_engine.listings.models import Product
from auction_engine.listings.service import ListingService
from auction_engine.settlement.job import SettlementJob
from auction_engine.storage.in_memory import InMemoryStorage
from auction_engine.timing.clock import FixedClock

SEASON_NOON = datetime(2014, 11, 16, 12, 0, tzinfo=timezone.utc)

MANUFACTURED_ITEM = 100
PURCHASED_ITEM = 200
DISCONTINUED_ITEM = 300
UNPRICED_ITEM = 400


class YieldingDirectory(StaticCustomerDirectory):
    """Gives up the event loop on every lookup to force task interleaving."""

    async def exists(self, customer_id: int) -> bool:
        await asyncio.sleep(0)
        return await super().exists(customer_id)


@pytest.fixture
def server_config():
    return parse_server_config({})


@pytest.fixture
def clock():
    return FixedClock(SEASON_NOON)


@pytest.fixture
def catalog():
    return StaticCatalog(
        products=[
            Product(item_id=MANUFACTURED_ITEM, list_price=Decimal("100.00"), manufactured=True),
            Product(item_id=PURCHASED_ITEM, list_price=Decimal("100.00"), manufactured=False),
            Product(
                item_id=DISCONTINUED_ITEM,
                list_price=Decimal("40.00"),
                manufactured=True,
                discontinued_date=datetime(2013, 1, 1, tzinfo=timezone.utc),
            ),
            Product(item_id=UNPRICED_ITEM, list_price=Decimal("0"), manufactured=False),
        ]
    )


@pytest.fixture
def customers():
    return YieldingDirectory(customers=[1, 2, 3])


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def listing_service(storage, catalog, server_config):
    return ListingService(
        storage=storage,
        catalog=catalog,
        season=server_config.season,
        pricing=server_config.pricing,
    )


@pytest.fixture
def engine(storage, catalog, customers, clock, server_config):
    return BiddingEngine(
        storage=storage,
        catalog=catalog,
        customers=customers,
        clock=clock,
        season=server_config.season,
        pricing=server_config.pricing,
    )


@pytest.fixture
def settlement_job(storage, catalog, clock):
    return SettlementJob(storage=storage, catalog=catalog, clock=clock)


@pytest.fixture
def history_service(storage):
    return HistoryService(storage=storage)
