"""Postgres storage backend leveraging asyncpg."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any, AsyncIterator

import asyncpg

from ..errors import Conflict, ListingNotFound
from ..listings.fsm import ListingStatus
from ..listings.models import Bid, HistoryEntry, Listing

_SCHEMA = """
CREATE TABLE IF NOT EXISTS auction_listings (
    item_id BIGINT PRIMARY KEY,
    expiry TIMESTAMPTZ NOT NULL,
    initial_price NUMERIC(19, 4) NOT NULL,
    status TEXT NOT NULL DEFAULT 'Active'
);
CREATE TABLE IF NOT EXISTS auction_bids (
    bid_id BIGSERIAL PRIMARY KEY,
    item_id BIGINT NOT NULL REFERENCES auction_listings (item_id),
    bidder_id BIGINT NOT NULL,
    amount NUMERIC(19, 4) NOT NULL,
    accepted_at TIMESTAMPTZ NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_auction_listings_status
ON auction_listings (status, expiry);
CREATE INDEX IF NOT EXISTS idx_auction_bids_item
ON auction_bids (item_id, bid_id);
CREATE INDEX IF NOT EXISTS idx_auction_bids_bidder
ON auction_bids (bidder_id, accepted_at);
"""

_LISTING_COLUMNS = "item_id, expiry, initial_price, status"
_BID_COLUMNS = "item_id, bidder_id, amount, accepted_at"


def _listing(row: Any) -> Listing:
    return Listing(
        item_id=row["item_id"],
        expiry=row["expiry"],
        initial_price=row["initial_price"],
        status=ListingStatus(row["status"]),
    )


def _bid(row: Any) -> Bid:
    return Bid(
        item_id=row["item_id"],
        bidder_id=row["bidder_id"],
        amount=row["amount"],
        accepted_at=row["accepted_at"],
    )


class _PostgresItemScope:
    """Runs inside a transaction that holds the item's advisory lock."""

    def __init__(self, conn: asyncpg.Connection, item_id: int, listing: Listing | None) -> None:
        self._conn = conn
        self.item_id = item_id
        self.listing = listing

    async def list_bids(self) -> list[Bid]:
        rows = await self._conn.fetch(
            f"SELECT {_BID_COLUMNS} FROM auction_bids WHERE item_id=$1 ORDER BY bid_id",
            self.item_id,
        )
        return [_bid(row) for row in rows]

    async def highest_bid(self) -> Decimal | None:
        return await self._conn.fetchval(
            "SELECT MAX(amount) FROM auction_bids WHERE item_id=$1",
            self.item_id,
        )

    async def latest_bid(self) -> Bid | None:
        row = await self._conn.fetchrow(
            f"""SELECT {_BID_COLUMNS} FROM auction_bids WHERE item_id=$1
                ORDER BY bid_id DESC LIMIT 1""",
            self.item_id,
        )
        return _bid(row) if row else None

    async def insert_listing(self, listing: Listing) -> None:
        if self.listing is not None:
            raise Conflict(f"item {self.item_id} already has a listing")
        await self._conn.execute(
            f"INSERT INTO auction_listings({_LISTING_COLUMNS}) VALUES($1, $2, $3, $4)",
            listing.item_id,
            listing.expiry,
            listing.initial_price,
            listing.status.value,
        )
        self.listing = listing

    async def set_status(self, status: ListingStatus) -> None:
        if self.listing is None:
            raise ListingNotFound(self.item_id)
        await self._conn.execute(
            "UPDATE auction_listings SET status=$2 WHERE item_id=$1",
            self.item_id,
            status.value,
        )
        self.listing = self.listing.with_status(status)

    async def append_bid(self, bid: Bid) -> None:
        if self.listing is None:
            raise ListingNotFound(self.item_id)
        await self._conn.execute(
            f"INSERT INTO auction_bids({_BID_COLUMNS}) VALUES($1, $2, $3, $4)",
            bid.item_id,
            bid.bidder_id,
            bid.amount,
            bid.accepted_at,
        )


class PostgresStorage:
    def __init__(self, *, dsn: str | None = None, **connect_kwargs: Any) -> None:
        if not dsn and not connect_kwargs:
            raise ValueError("postgres connection details missing")
        self._dsn = dsn
        self._connect_kwargs = connect_kwargs
        self._pool: asyncpg.Pool | None = None
        self._pool_lock = asyncio.Lock()

    async def _ensure_pool(self) -> asyncpg.Pool:
        async with self._pool_lock:
            if self._pool is None:
                self._pool = await asyncpg.create_pool(dsn=self._dsn, **self._connect_kwargs)
                async with self._pool.acquire() as conn:
                    await conn.execute(_SCHEMA)
        return self._pool

    @asynccontextmanager
    async def item_scope(self, item_id: int) -> AsyncIterator[_PostgresItemScope]:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute("SELECT pg_advisory_xact_lock($1)", item_id)
                row = await conn.fetchrow(
                    f"SELECT {_LISTING_COLUMNS} FROM auction_listings WHERE item_id=$1",
                    item_id,
                )
                yield _PostgresItemScope(conn, item_id, _listing(row) if row else None)

    async def get_listing(self, item_id: int) -> Listing | None:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_LISTING_COLUMNS} FROM auction_listings WHERE item_id=$1",
                item_id,
            )
        return _listing(row) if row else None

    async def list_listings(self, status: ListingStatus | None = None) -> list[Listing]:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            if status is None:
                rows = await conn.fetch(
                    f"SELECT {_LISTING_COLUMNS} FROM auction_listings ORDER BY item_id"
                )
            else:
                rows = await conn.fetch(
                    f"""SELECT {_LISTING_COLUMNS} FROM auction_listings
                        WHERE status=$1 ORDER BY item_id""",
                    status.value,
                )
        return [_listing(row) for row in rows]

    async def list_expired(self, now: datetime) -> list[Listing]:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(
                f"""SELECT {_LISTING_COLUMNS} FROM auction_listings
                    WHERE status=$1 AND expiry <= $2 ORDER BY item_id""",
                ListingStatus.ACTIVE.value,
                now,
            )
        return [_listing(row) for row in rows]

    async def list_bids(self, item_id: int) -> list[Bid]:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT {_BID_COLUMNS} FROM auction_bids WHERE item_id=$1 ORDER BY bid_id",
                item_id,
            )
        return [_bid(row) for row in rows]

    async def latest_bid(self, item_id: int) -> Bid | None:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""SELECT {_BID_COLUMNS} FROM auction_bids WHERE item_id=$1
                    ORDER BY bid_id DESC LIMIT 1""",
                item_id,
            )
        return _bid(row) if row else None

    async def bid_history(
        self,
        bidder_id: int,
        start: datetime,
        end: datetime,
        status: ListingStatus | None = None,
    ) -> list[HistoryEntry]:
        query = """
            SELECT b.item_id, b.bidder_id, b.amount, b.accepted_at, l.status
            FROM auction_bids AS b
            INNER JOIN auction_listings AS l ON b.item_id = l.item_id
            WHERE b.bidder_id = $1 AND b.accepted_at BETWEEN $2 AND $3
        """
        args: list[Any] = [bidder_id, start, end]
        if status is not None:
            query += " AND l.status = $4"
            args.append(status.value)
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(query, *args)
        return [
            HistoryEntry(
                item_id=row["item_id"],
                bidder_id=row["bidder_id"],
                amount=row["amount"],
                accepted_at=row["accepted_at"],
                status=ListingStatus(row["status"]),
            )
            for row in rows
        ]

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
