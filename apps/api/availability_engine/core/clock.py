"""Wall-clock helpers and property-local time conversions."""
from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Callable
from zoneinfo import ZoneInfo

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Ensure the datetime is timezone-aware in UTC.

    SQLite hands back naive values for ``DateTime(timezone=True)`` columns; every
    stored datetime is written in UTC, so naive means UTC.
    """

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def local_today(now: datetime, tz_name: str) -> date:
    """Return the calendar date at the property for the given instant."""

    return ensure_utc(now).astimezone(ZoneInfo(tz_name)).date()


def local_instant(day: date, hour: int, tz_name: str) -> datetime:
    """Return ``day`` at ``hour``:00 property-local time, expressed in UTC."""

    local = datetime.combine(day, time(hour=hour), tzinfo=ZoneInfo(tz_name))
    return local.astimezone(timezone.utc)
