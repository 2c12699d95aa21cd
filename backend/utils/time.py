"""Time-related utility functions."""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def parse_time_of_day(value) -> time:
    """Parse "HH:MM" or "HH:MM:SS" into a time. Passes time objects through."""
    if isinstance(value, time):
        return value
    value = str(value).strip()
    fmt = "%H:%M:%S" if value.count(":") == 2 else "%H:%M"
    return datetime.strptime(value, fmt).time()


def minute_of_day(moment) -> int:
    """Minutes since midnight for a datetime or time."""
    return moment.hour * 60 + moment.minute


def in_time_window(minute: int, start: time, end: time) -> bool:
    """
    Check whether a minute-of-day lies inside [start, end).

    A window whose start is after its end wraps midnight and is tested as two
    ranges: [start, 24:00) and [00:00, end).
    """
    start_min = minute_of_day(start)
    end_min = minute_of_day(end)
    if start_min == end_min:
        return False
    if start_min < end_min:
        return start_min <= minute < end_min
    return minute >= start_min or minute < end_min


def at_time(day: date, moment: time, tzinfo: Optional[timezone] = None) -> datetime:
    """Combine a calendar day and a time of day, keeping the caller's tzinfo."""
    return datetime.combine(day, moment, tzinfo=tzinfo)


def day_bounds(day: date, tzinfo=None) -> tuple[datetime, datetime]:
    """Half-open [00:00, next 00:00) interval for a calendar day."""
    start = datetime.combine(day, time.min, tzinfo=tzinfo)
    return start, start + timedelta(days=1)


def hours_between(start: datetime, end: datetime) -> float:
    """Elapsed hours from start to end, never negative."""
    return max(0.0, (end - start).total_seconds() / 3600)


def ensure_aware(moment: Optional[datetime]) -> Optional[datetime]:
    """Normalize to UTC. Naive datetimes are taken to be UTC already."""
    if moment is None:
        return None
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)
