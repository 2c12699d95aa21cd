from .time import (
    utc_now,
    parse_time_of_day,
    minute_of_day,
    in_time_window,
    at_time,
    day_bounds,
    hours_between,
    ensure_aware,
)
from .log import setup_logging

__all__ = [
    "utc_now",
    "parse_time_of_day",
    "minute_of_day",
    "in_time_window",
    "at_time",
    "day_bounds",
    "hours_between",
    "ensure_aware",
    "setup_logging",
]
