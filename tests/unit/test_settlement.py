"""Unit tests for the settlement job and its scheduler."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from auction_engine.catalog.gateway import StaticCatalog
from auction_engine.listings.fsm import ListingStatus
from auction_engine.listings.models import Bid, Listing
from auction_engine.settlement.job import SettlementJob, SettlementResult
from auction_engine.settlement.scheduler import SettlementScheduler

from conftest import MANUFACTURED_ITEM, PURCHASED_ITEM

EXPIRY = datetime(2014, 11, 20, tzinfo=timezone.utc)
AFTER_EXPIRY = EXPIRY + timedelta(seconds=1)


class YieldingCatalog(StaticCatalog):
    """Gives up the event loop on every lookup so overlapping passes interleave."""

    async def get_product(self, item_id):
        await asyncio.sleep(0)
        return await super().get_product(item_id)


class TestSettle:
    @pytest.mark.asyncio
    async def test_expired_listing_without_bids_is_sold(self, listing_service, settlement_job, storage):
        await listing_service.create_listing(MANUFACTURED_ITEM, expiry=EXPIRY)

        transitions = await settlement_job.settle(AFTER_EXPIRY)

        assert transitions == [(MANUFACTURED_ITEM, ListingStatus.SOLD)]
        assert (await storage.get_listing(MANUFACTURED_ITEM)).status is ListingStatus.SOLD

    @pytest.mark.asyncio
    async def test_listing_expiring_exactly_now_is_settled(self, listing_service, settlement_job):
        await listing_service.create_listing(MANUFACTURED_ITEM, expiry=EXPIRY)

        assert await settlement_job.settle(EXPIRY) == [(MANUFACTURED_ITEM, ListingStatus.SOLD)]

    @pytest.mark.asyncio
    async def test_second_pass_transitions_nothing(self, listing_service, settlement_job):
        await listing_service.create_listing(MANUFACTURED_ITEM, expiry=EXPIRY)
        await settlement_job.settle(AFTER_EXPIRY)

        assert await settlement_job.settle(AFTER_EXPIRY) == []

    @pytest.mark.asyncio
    async def test_unexpired_listing_untouched(self, listing_service, settlement_job, storage):
        await listing_service.create_listing(MANUFACTURED_ITEM, expiry=EXPIRY)

        assert await settlement_job.settle(EXPIRY - timedelta(seconds=1)) == []
        assert (await storage.get_listing(MANUFACTURED_ITEM)).status is ListingStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_cancelled_listing_untouched(self, listing_service, settlement_job, storage):
        await listing_service.create_listing(MANUFACTURED_ITEM, expiry=EXPIRY)
        await listing_service.cancel_listing(MANUFACTURED_ITEM)

        assert await settlement_job.settle(AFTER_EXPIRY) == []
        assert (await storage.get_listing(MANUFACTURED_ITEM)).status is ListingStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_best_bid_below_list_price_is_sold(self, listing_service, engine, settlement_job):
        await listing_service.create_listing(MANUFACTURED_ITEM, expiry=EXPIRY)
        await engine.place_bid(MANUFACTURED_ITEM, 1, "90.00")

        assert await settlement_job.settle(AFTER_EXPIRY) == [(MANUFACTURED_ITEM, ListingStatus.SOLD)]

    @pytest.mark.asyncio
    async def test_best_bid_at_list_price_stays_active(self, listing_service, settlement_job, storage):
        await listing_service.create_listing(MANUFACTURED_ITEM, expiry=EXPIRY)
        async with storage.item_scope(MANUFACTURED_ITEM) as scope:
            await scope.append_bid(
                Bid(
                    item_id=MANUFACTURED_ITEM,
                    bidder_id=1,
                    amount=Decimal("100.00"),
                    accepted_at=EXPIRY,
                )
            )

        assert await settlement_job.settle(AFTER_EXPIRY) == []
        assert (await storage.get_listing(MANUFACTURED_ITEM)).status is ListingStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_listing_missing_from_catalog_is_skipped(self, settlement_job, storage, caplog):
        async with storage.item_scope(555) as scope:
            await scope.insert_listing(
                Listing(item_id=555, expiry=EXPIRY, initial_price=Decimal("5.00"))
            )

        with caplog.at_level(logging.WARNING):
            assert await settlement_job.settle(AFTER_EXPIRY) == []

        assert "not in catalog" in caplog.text
        assert (await storage.get_listing(555)).status is ListingStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_defaults_to_clock(self, listing_service, settlement_job, clock):
        await listing_service.create_listing(MANUFACTURED_ITEM, expiry=EXPIRY)
        clock.set(AFTER_EXPIRY)

        assert await settlement_job.settle() == [(MANUFACTURED_ITEM, ListingStatus.SOLD)]

    @pytest.mark.asyncio
    async def test_overlapping_passes_transition_each_listing_once(
        self, listing_service, storage, catalog, clock
    ):
        await listing_service.create_listing(MANUFACTURED_ITEM, expiry=EXPIRY)
        await listing_service.create_listing(PURCHASED_ITEM, expiry=EXPIRY)
        slow_catalog = YieldingCatalog(products=catalog.all())
        first = SettlementJob(storage=storage, catalog=slow_catalog, clock=clock)
        second = SettlementJob(storage=storage, catalog=slow_catalog, clock=clock)

        results = await asyncio.gather(first.settle(AFTER_EXPIRY), second.settle(AFTER_EXPIRY))

        transitions = [item for result in results for item in result]
        assert sorted(transitions) == [
            (MANUFACTURED_ITEM, ListingStatus.SOLD),
            (PURCHASED_ITEM, ListingStatus.SOLD),
        ]
        for item_id in (MANUFACTURED_ITEM, PURCHASED_ITEM):
            assert (await storage.get_listing(item_id)).status is ListingStatus.SOLD


class TestReport:
    @pytest.mark.asyncio
    async def test_rows_carry_latest_bid_and_exclude_cancelled(
        self, listing_service, engine, settlement_job, clock
    ):
        await listing_service.create_listing(MANUFACTURED_ITEM, expiry=EXPIRY)
        await listing_service.create_listing(PURCHASED_ITEM, expiry=EXPIRY)
        await engine.place_bid(MANUFACTURED_ITEM, 1)
        clock.advance(timedelta(hours=1))
        await engine.place_bid(MANUFACTURED_ITEM, 2, "60.00")
        await listing_service.cancel_listing(PURCHASED_ITEM)

        result = await settlement_job.run(AFTER_EXPIRY)

        assert result.settled_at == AFTER_EXPIRY
        assert result.transitions == [(MANUFACTURED_ITEM, ListingStatus.SOLD)]
        assert len(result.rows) == 1
        row = result.rows[0]
        assert row.item_id == MANUFACTURED_ITEM
        assert row.status is ListingStatus.SOLD
        assert row.bidder_id == 2
        assert row.amount == Decimal("60.00")
        assert row.accepted_at == datetime(2014, 11, 16, 13, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_row_without_bids(self, listing_service, settlement_job):
        await listing_service.create_listing(MANUFACTURED_ITEM, expiry=EXPIRY)

        rows = await settlement_job.report()

        assert [row.to_record() for row in rows] == [
            {
                "item_id": MANUFACTURED_ITEM,
                "expiry": "2014-11-20T00:00:00Z",
                "initial_price": "50.0000",
                "bidder_id": None,
                "amount": None,
                "accepted_at": None,
                "status": "Active",
            }
        ]


class TestSettlementScheduler:
    """Periodic trigger around the settlement job."""

    @pytest.mark.asyncio
    async def test_tick_runs_job(self, caplog):
        job = AsyncMock()
        job.run = AsyncMock(
            return_value=SettlementResult(
                settled_at=AFTER_EXPIRY,
                transitions=[(MANUFACTURED_ITEM, ListingStatus.SOLD)],
            )
        )
        scheduler = SettlementScheduler(job, interval_seconds=60)

        with caplog.at_level(logging.INFO, logger="auction_engine.settlement.scheduler"):
            await scheduler.tick()

        job.run.assert_awaited_once_with()
        record = next(r for r in caplog.records if "closed" in r.getMessage())
        assert record.args == (1, [MANUFACTURED_ITEM])
        assert record.getMessage() == f"scheduled settlement closed 1 auction(s): [{MANUFACTURED_ITEM}]"

    @pytest.mark.asyncio
    async def test_tick_logs_failures(self, caplog):
        job = AsyncMock()
        job.run = AsyncMock(side_effect=RuntimeError("store down"))
        scheduler = SettlementScheduler(job, interval_seconds=60)

        with caplog.at_level(logging.ERROR):
            await scheduler.tick()

        assert "store down" in caplog.text

    @pytest.mark.asyncio
    async def test_start_and_shutdown(self):
        scheduler = SettlementScheduler(AsyncMock(), interval_seconds=60)

        scheduler.start()
        assert scheduler.running
        scheduler.shutdown()

    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            SettlementScheduler(AsyncMock(), interval_seconds=0)
