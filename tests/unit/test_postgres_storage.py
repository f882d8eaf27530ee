"""Unit tests for the Postgres backend.

The transaction tests drive a recorded asyncpg connection. The round-trip
suite needs a database and runs only when AUCTION_TEST_POSTGRES_DSN is set.
"""

from __future__ import annotations

import os
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from auction_engine.errors import Conflict, ListingNotFound
from auction_engine.listings.fsm import ListingStatus
from auction_engine.listings.models import Bid, Listing
from auction_engine.storage.postgres import PostgresStorage

EXPIRY = datetime(2014, 11, 20, tzinfo=timezone.utc)
POSTGRES_DSN = os.getenv("AUCTION_TEST_POSTGRES_DSN")


def _listing(item_id=1):
    return Listing(item_id=item_id, expiry=EXPIRY, initial_price=Decimal("10.00"))


def _bid(amount, item_id=1, bidder_id=1):
    return Bid(
        item_id=item_id,
        bidder_id=bidder_id,
        amount=Decimal(amount),
        accepted_at=EXPIRY,
    )


class RecordedTransaction:
    def __init__(self, conn: "RecordedConnection") -> None:
        self._conn = conn

    async def __aenter__(self):
        self._conn.events.append("begin")
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self._conn.events.append("rollback" if exc_type else "commit")
        return False


class RecordedConnection:
    def __init__(self, listing_row=None) -> None:
        self.events: list[str] = []
        self.statements: list[tuple] = []
        self._listing_row = listing_row
        self.fetchval = AsyncMock(return_value=None)
        self.fetch = AsyncMock(return_value=[])

    def transaction(self):
        return RecordedTransaction(self)

    async def execute(self, query, *args):
        self.events.append(query.split()[0])
        self.statements.append((query, *args))
        return "OK"

    async def fetchrow(self, query, *args):
        self.events.append("fetchrow")
        return self._listing_row


class RecordedPool:
    def __init__(self, conn: RecordedConnection) -> None:
        self._conn = conn

    def acquire(self):
        conn = self._conn

        class _Acquire:
            async def __aenter__(self):
                return conn

            async def __aexit__(self, *exc_info):
                return False

        return _Acquire()


def _storage_with(conn):
    storage = PostgresStorage(dsn="postgresql://auction@localhost/auction")
    storage._pool = RecordedPool(conn)
    return storage


class TestPostgresItemScope:
    def test_requires_connection_details(self):
        with pytest.raises(ValueError):
            PostgresStorage()

    @pytest.mark.asyncio
    async def test_advisory_lock_taken_inside_transaction(self):
        conn = RecordedConnection()

        async with _storage_with(conn).item_scope(42) as scope:
            assert scope.listing is None

        assert conn.events[:3] == ["begin", "SELECT", "fetchrow"]
        assert conn.statements[0] == ("SELECT pg_advisory_xact_lock($1)", 42)
        assert conn.events[-1] == "commit"

    @pytest.mark.asyncio
    async def test_exception_rolls_back(self):
        conn = RecordedConnection(
            listing_row={
                "item_id": 1,
                "expiry": EXPIRY,
                "initial_price": Decimal("10.00"),
                "status": "Active",
            }
        )

        with pytest.raises(RuntimeError):
            async with _storage_with(conn).item_scope(1) as scope:
                assert scope.listing == _listing()
                await scope.append_bid(_bid("12.00"))
                raise RuntimeError("abort")

        assert "INSERT" in conn.events
        assert conn.events[-1] == "rollback"

    @pytest.mark.asyncio
    async def test_insert_existing_conflicts_without_writing(self):
        conn = RecordedConnection(
            listing_row={
                "item_id": 1,
                "expiry": EXPIRY,
                "initial_price": Decimal("10.00"),
                "status": "Active",
            }
        )

        with pytest.raises(Conflict):
            async with _storage_with(conn).item_scope(1) as scope:
                await scope.insert_listing(_listing())

        assert "INSERT" not in conn.events
        assert conn.events[-1] == "rollback"

    @pytest.mark.asyncio
    async def test_bid_without_listing(self):
        conn = RecordedConnection()

        with pytest.raises(ListingNotFound):
            async with _storage_with(conn).item_scope(1) as scope:
                await scope.append_bid(_bid("1.00"))

        assert "INSERT" not in conn.events

    @pytest.mark.asyncio
    async def test_highest_bid_reads_through_the_scope_connection(self):
        conn = RecordedConnection()
        conn.fetchval.return_value = Decimal("15.00")

        async with _storage_with(conn).item_scope(1) as scope:
            assert await scope.highest_bid() == Decimal("15.00")

        conn.fetchval.assert_awaited_once()
        assert conn.fetchval.await_args.args[1] == 1


@pytest.mark.skipif(not POSTGRES_DSN, reason="AUCTION_TEST_POSTGRES_DSN not set")
class TestPostgresRoundTrip:
    """Same unit-of-work cases as the in-memory backend, against a live database."""

    async def _fresh(self):
        storage = PostgresStorage(dsn=POSTGRES_DSN)
        pool = await storage._ensure_pool()
        async with pool.acquire() as conn:
            await conn.execute("TRUNCATE auction_bids, auction_listings")
        return storage

    @pytest.mark.asyncio
    async def test_writes_visible_after_clean_exit(self):
        storage = await self._fresh()
        try:
            async with storage.item_scope(1) as scope:
                await scope.insert_listing(_listing())
                await scope.append_bid(_bid("11.00"))
                assert await scope.highest_bid() == Decimal("11.00")

            assert await storage.get_listing(1) == _listing()
            assert await storage.list_bids(1) == [_bid("11.00")]
        finally:
            await storage.close()

    @pytest.mark.asyncio
    async def test_exception_discards_writes(self):
        storage = await self._fresh()
        try:
            async with storage.item_scope(1) as scope:
                await scope.insert_listing(_listing())

            with pytest.raises(RuntimeError):
                async with storage.item_scope(1) as scope:
                    await scope.append_bid(_bid("12.00"))
                    await scope.set_status(ListingStatus.CANCELLED)
                    raise RuntimeError("abort")

            assert await storage.list_bids(1) == []
            assert (await storage.get_listing(1)).status is ListingStatus.ACTIVE
        finally:
            await storage.close()

    @pytest.mark.asyncio
    async def test_queries(self):
        storage = await self._fresh()
        try:
            async with storage.item_scope(1) as scope:
                await scope.insert_listing(_listing(1))
                await scope.append_bid(_bid("11.00"))
                await scope.append_bid(_bid("12.00", bidder_id=2))
            async with storage.item_scope(2) as scope:
                await scope.insert_listing(_listing(2))
                await scope.set_status(ListingStatus.CANCELLED)

            assert [listing.item_id for listing in await storage.list_listings(ListingStatus.ACTIVE)] == [1]
            assert [listing.item_id for listing in await storage.list_expired(EXPIRY)] == [1]
            assert (await storage.latest_bid(1)).bidder_id == 2
            history = await storage.bid_history(2, EXPIRY, EXPIRY)
            assert [(entry.item_id, entry.amount) for entry in history] == [(1, Decimal("12.00"))]
        finally:
            await storage.close()
