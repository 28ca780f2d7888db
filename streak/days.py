"""
Day-key and local calendar helpers.

All streak math works on local calendar days. Datetimes handled here are
naive local time; aware datetimes are converted to local time first.
"""

from datetime import datetime, timedelta
from typing import Iterator, Optional, Union


def to_local(dt: datetime) -> datetime:
    """Normalize to naive local time."""
    if dt.tzinfo:
        return dt.astimezone().replace(tzinfo=None)
    return dt


def day_key(dt: Optional[datetime] = None) -> str:
    """Calendar date in local time as YYYY-MM-DD."""
    dt = to_local(dt or datetime.now())
    return f"{dt.year:04d}-{dt.month:02d}-{dt.day:02d}"


def start_of_day(dt: datetime) -> datetime:
    return to_local(dt).replace(hour=0, minute=0, second=0, microsecond=0)


def parse_day_key(key: str) -> Optional[datetime]:
    """Local midnight of a day-key, or None if the key is malformed."""
    try:
        return datetime.strptime(key, "%Y-%m-%d")
    except (TypeError, ValueError):
        return None


def whole_days_between(a: datetime, b: datetime) -> int:
    """Whole calendar days from the local day of `a` to the local day of `b`.

    Negative when `b` falls on an earlier day than `a`.
    """
    return (start_of_day(b) - start_of_day(a)).days


def iter_day_keys(start: datetime, end: datetime) -> Iterator[str]:
    """Day-keys from start's day to end's day, inclusive."""
    cursor = start_of_day(start)
    last = start_of_day(end)
    while cursor <= last:
        yield day_key(cursor)
        cursor += timedelta(days=1)


def to_epoch_ms(dt: datetime) -> int:
    return round(dt.timestamp() * 1000)


def from_epoch_ms(value: Union[int, float]) -> datetime:
    return datetime.fromtimestamp(value / 1000)
