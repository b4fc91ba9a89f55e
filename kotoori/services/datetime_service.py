"""Datetime helpers: UTC storage, local display."""

from __future__ import annotations

from datetime import datetime, timezone

import pendulum

# Display format used by the history timeline: YYYY/MM/DD HH:MM:SS
DISPLAY_FORMAT = "YYYY/MM/DD HH:mm:ss"


def now_utc() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


def now_local() -> datetime:
    """Return the current time in the local timezone."""
    return datetime.now().astimezone()


def as_utc(value: datetime) -> datetime:
    """Attach UTC to a naive datetime read back from SQLite.

    Timestamps are always written in UTC, but SQLite drops the offset.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value: str | datetime) -> datetime:
    """Parse an ISO 8601 timestamp; naive values are taken as UTC."""
    if isinstance(value, datetime):
        return as_utc(value)
    parsed = pendulum.parse(value.strip(), tz="UTC", strict=False)
    if not isinstance(parsed, pendulum.DateTime):
        # pendulum.parse returns Date for date-only strings
        parsed = pendulum.datetime(
            parsed.year, parsed.month, parsed.day, tz="UTC"  # type: ignore[union-attr]
        )
    return parsed  # type: ignore[return-value]


def format_local(value: str | datetime, tz: str | None = None) -> str:
    """Format a timestamp for display in *tz* (default: the local zone)."""
    dt = pendulum.instance(parse_datetime(value))
    zone = pendulum.timezone(tz) if tz else pendulum.local_timezone()
    return dt.in_timezone(zone).format(DISPLAY_FORMAT)
