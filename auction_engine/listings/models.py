"""Shared auction data structures."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from ..errors import InvalidArgument
from ..timing.timestamps import coerce_timestamp, format_timestamp
from .fsm import ListingStatus

MONEY_QUANTUM = Decimal("0.0001")


def to_money(value: Any) -> Decimal:
    """Parse a monetary amount into a Decimal with four decimal places."""
    if isinstance(value, bool):
        raise InvalidArgument(f"invalid monetary amount {value!r}")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise InvalidArgument(f"invalid monetary amount {value!r}") from exc
    if not amount.is_finite():
        raise InvalidArgument(f"invalid monetary amount {value!r}")
    return amount.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def format_money(value: Decimal) -> str:
    return str(value.quantize(MONEY_QUANTUM))


@dataclass(frozen=True)
class Product:
    item_id: int
    list_price: Decimal
    manufactured: bool
    sale_end_date: datetime | None = None
    discontinued_date: datetime | None = None

    @property
    def is_commercialized(self) -> bool:
        return (
            self.sale_end_date is None
            and self.discontinued_date is None
            and self.list_price != 0
        )

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Product":
        sale_end = record.get("sale_end_date")
        discontinued = record.get("discontinued_date")
        return cls(
            item_id=int(record["item_id"]),
            list_price=to_money(record.get("list_price") or 0),
            manufactured=bool(record.get("manufactured", False)),
            sale_end_date=coerce_timestamp(sale_end) if sale_end else None,
            discontinued_date=coerce_timestamp(discontinued) if discontinued else None,
        )


@dataclass(frozen=True)
class Listing:
    item_id: int
    expiry: datetime
    initial_price: Decimal
    status: ListingStatus = ListingStatus.ACTIVE

    def with_status(self, status: ListingStatus) -> "Listing":
        return replace(self, status=status)

    def to_record(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "expiry": format_timestamp(self.expiry),
            "initial_price": format_money(self.initial_price),
            "status": self.status.value,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Listing":
        return cls(
            item_id=int(record["item_id"]),
            expiry=coerce_timestamp(record["expiry"]),
            initial_price=to_money(record["initial_price"]),
            status=ListingStatus(record["status"]),
        )


@dataclass(frozen=True)
class Bid:
    item_id: int
    bidder_id: int
    amount: Decimal
    accepted_at: datetime

    def to_record(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "bidder_id": self.bidder_id,
            "amount": format_money(self.amount),
            "accepted_at": format_timestamp(self.accepted_at),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Bid":
        return cls(
            item_id=int(record["item_id"]),
            bidder_id=int(record["bidder_id"]),
            amount=to_money(record["amount"]),
            accepted_at=coerce_timestamp(record["accepted_at"]),
        )


@dataclass(frozen=True)
class HistoryEntry:
    item_id: int
    bidder_id: int
    amount: Decimal
    accepted_at: datetime
    status: ListingStatus

    def to_record(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "bidder_id": self.bidder_id,
            "amount": format_money(self.amount),
            "accepted_at": format_timestamp(self.accepted_at),
            "status": self.status.value,
        }


@dataclass(frozen=True)
class SettlementRow:
    """Latest bid (if any) and post-settlement status of one listing."""

    item_id: int
    expiry: datetime
    initial_price: Decimal
    status: ListingStatus
    bidder_id: int | None = None
    amount: Decimal | None = None
    accepted_at: datetime | None = None

    def to_record(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "expiry": format_timestamp(self.expiry),
            "initial_price": format_money(self.initial_price),
            "bidder_id": self.bidder_id,
            "amount": format_money(self.amount) if self.amount is not None else None,
            "accepted_at": (
                format_timestamp(self.accepted_at) if self.accepted_at is not None else None
            ),
            "status": self.status.value,
        }
