"""Listing status finite state machine."""

from __future__ import annotations

from enum import Enum

from ..errors import AlreadyTerminal


class ListingStatus(str, Enum):
    ACTIVE = "Active"
    SOLD = "Sold"
    CANCELLED = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL


class ListingEvent(str, Enum):
    SETTLED = "settled"
    CANCELLED = "cancelled"


_TERMINAL = frozenset({ListingStatus.SOLD, ListingStatus.CANCELLED})

_TRANSITIONS = {
    (ListingStatus.ACTIVE, ListingEvent.SETTLED): ListingStatus.SOLD,
    (ListingStatus.ACTIVE, ListingEvent.CANCELLED): ListingStatus.CANCELLED,
}


def transition(current: ListingStatus, event: ListingEvent) -> ListingStatus:
    try:
        return _TRANSITIONS[(current, event)]
    except KeyError as exc:
        raise AlreadyTerminal(
            f"invalid transition from {current.value} via {event.value}"
        ) from exc
