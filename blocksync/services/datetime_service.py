"""Timestamp helpers: every stored timestamp uses one strict UTC text format."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pendulum

# YYYY-MM-DD HH:MM:SS.ffffff+0000. Fixed width and always UTC, so stored
# values sort lexicographically in chronological order.
STRICT_FORMAT = "%Y-%m-%d %H:%M:%S.%f%z"


def now_utc() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


def format_datetime(dt: datetime) -> str:
    """Format a datetime in the strict storage format, normalized to UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime(STRICT_FORMAT)


def utc_timestamp(*, ago: timedelta | None = None) -> str:
    """Return the current time, optionally shifted into the past, as stored text."""
    moment = now_utc()
    if ago is not None:
        moment -= ago
    return format_datetime(moment)


def parse_datetime(value: str) -> datetime:
    """Parse a stored timestamp back into an aware datetime."""
    parsed = pendulum.parse(value.strip(), tz="UTC", strict=False)
    if not isinstance(parsed, pendulum.DateTime):
        # pendulum.parse returns Date for date-only strings
        parsed = pendulum.datetime(parsed.year, parsed.month, parsed.day, tz="UTC")  # type: ignore[union-attr]
    return parsed  # type: ignore[return-value]


def describe_age(value: str) -> str:
    """Human readable age of a stored timestamp, e.g. ``"3 hours ago"``."""
    return pendulum.instance(parse_datetime(value)).diff_for_humans()
