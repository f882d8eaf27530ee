"""Timestamp helpers enforcing timezone-aware UTC values."""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Any

from ..errors import InvalidArgument


class TimestampError(InvalidArgument):
    """Raised when timestamps are malformed or lack timezone information."""


def parse_timestamp(value: str) -> datetime:
    if not value:
        raise TimestampError("timestamp missing")
    try:
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        dt = datetime.fromisoformat(value)
    except ValueError as exc:
        raise TimestampError(f"timestamp {value!r} is not ISO-8601 compatible") from exc
    if dt.tzinfo is None:
        raise TimestampError("timestamp must include timezone information")
    return dt.astimezone(timezone.utc)


def coerce_timestamp(value: Any) -> datetime:
    """Accept ISO strings, datetimes or dates (as loaded by YAML) and return UTC."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    return parse_timestamp(str(value))


def format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
