"""UTC datetime utilities and the injectable clock."""

import math
from datetime import datetime, timedelta, timezone
from typing import Protocol


def utc_now() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def ceil_hours(delta: timedelta) -> int:
    """Whole hours remaining, rounded up, never negative."""
    seconds = delta.total_seconds()
    if seconds <= 0:
        return 0
    return math.ceil(seconds / 3600)


def ceil_days(delta: timedelta) -> int:
    """Whole days remaining, rounded up, never negative."""
    seconds = delta.total_seconds()
    if seconds <= 0:
        return 0
    return math.ceil(seconds / 86400)


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock. Services take a Clock so tests can pin "now"."""

    def now(self) -> datetime:
        return utc_now()
