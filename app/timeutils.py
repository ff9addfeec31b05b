"""Helpers for moving between stored UTC instants and local wall-clock time.

Instants are always stored and compared in UTC. Aware datetimes that share a
``ZoneInfo`` compare and subtract by wall-clock, which is wrong across DST
transitions, so local values are only used to find dates and midnights.
"""

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime.

    Naive values are treated as already being UTC (SQLite hands them back
    without tzinfo).
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def get_zone(name: str) -> ZoneInfo:
    return ZoneInfo(name)


def is_valid_zone(name: str) -> bool:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def local_date(instant: datetime, zone: ZoneInfo) -> date:
    """Calendar date of ``instant`` as seen in ``zone``."""
    return as_utc(instant).astimezone(zone).date()


def localize(day: date, wall_clock: time, zone: ZoneInfo) -> datetime:
    """UTC instant of ``wall_clock`` on ``day`` in ``zone``."""
    return datetime.combine(day, wall_clock, tzinfo=zone).astimezone(timezone.utc)


def start_of_day(day: date, zone: ZoneInfo) -> datetime:
    return localize(day, time.min, zone)


def seconds_between(start: datetime, end: datetime) -> float:
    return (as_utc(end) - as_utc(start)).total_seconds()


def iter_dates(start: date, end: date):
    """Yield every date from ``start`` to ``end`` inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
