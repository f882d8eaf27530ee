"""Injectable time sources.

Every "current time" read in the engine goes through a :class:`Clock` so that
validation stays deterministic under test and the auction season can be
replayed without touching the host clock.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Protocol

from ..config import ClockConfig


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Frozen clock; tests move it explicitly."""

    def __init__(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            raise ValueError("FixedClock requires a timezone-aware instant")
        self._instant = instant.astimezone(timezone.utc)

    def now(self) -> datetime:
        return self._instant

    def set(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            raise ValueError("FixedClock requires a timezone-aware instant")
        self._instant = instant.astimezone(timezone.utc)

    def advance(self, delta: timedelta) -> datetime:
        self._instant = self._instant + delta
        return self._instant


class PinnedDateClock:
    """Calendar date fixed by configuration, time of day taken from the wall clock."""

    def __init__(self, pinned: date, source: Clock | None = None) -> None:
        self._pinned = pinned
        self._source = source or SystemClock()

    def now(self) -> datetime:
        wall = self._source.now().astimezone(timezone.utc)
        return datetime.combine(self._pinned, wall.timetz())


def build_clock(config: ClockConfig) -> Clock:
    if config.mode == "system":
        return SystemClock()
    if config.mode == "fixed":
        if config.now is None:
            raise ValueError("fixed clock requires clock.now")
        return FixedClock(config.now)
    if config.mode == "pinned_date":
        if not config.date:
            raise ValueError("pinned_date clock requires clock.date")
        return PinnedDateClock(date.fromisoformat(config.date))
    raise ValueError(f"unknown clock mode {config.mode}")
