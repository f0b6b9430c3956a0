from __future__ import annotations

from datetime import date, datetime, time
from typing import Optional
from zoneinfo import ZoneInfo


def parse_iso_date(value: str) -> date:
    """Parse YYYY-MM-DD string into date."""
    return datetime.strptime(value, "%Y-%m-%d").date()


def clock_minutes(value: time | datetime) -> int:
    """Minutes since midnight, seconds ignored."""
    return value.hour * 60 + value.minute


def minutes_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 60


def now_local(tz_name: Optional[str] = None) -> datetime:
    """Current wall-clock time in the attendance timezone (naive).

    Note: Wrapped so tests can patch/mocked easier. Without a timezone name the
    server's local time is used.
    """
    if not tz_name:
        return datetime.now()
    return datetime.now(ZoneInfo(tz_name)).replace(tzinfo=None)


def format_clock(value: Optional[datetime]) -> str:
    return value.strftime("%H:%M:%S") if value else "-"
