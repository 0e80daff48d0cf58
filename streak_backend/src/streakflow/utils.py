from __future__ import annotations

import re
from datetime import date, timedelta
from typing import Iterator, Optional

DATE_KEY_FORMAT = "%Y-%m-%d"

_DATE_KEY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_KEY_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


# PUBLIC_INTERFACE
def parse_date_key(value: Optional[str]) -> date:
    """
    Parse a 'YYYY-MM-DD' day key into a date.

    Raises:
        ValueError: if the value is missing, not a string, or not a valid calendar day.
    """
    if not isinstance(value, str) or not _DATE_KEY_RE.match(value):
        raise ValueError(f"Invalid date key: {value!r}; expected YYYY-MM-DD")
    return date.fromisoformat(value)


# PUBLIC_INTERFACE
def to_date_key(value: date) -> str:
    """Format a date as a 'YYYY-MM-DD' day key."""
    return value.strftime(DATE_KEY_FORMAT)


def is_date_key(value: Optional[str]) -> bool:
    try:
        parse_date_key(value)
    except ValueError:
        return False
    return True


def is_time_key(value: Optional[str]) -> bool:
    """True for 'HH:MM' 24h strings."""
    return isinstance(value, str) and bool(_TIME_KEY_RE.match(value))


def shift_date_key(key: str, days: int) -> str:
    return to_date_key(parse_date_key(key) + timedelta(days=days))


def iter_date_keys(start: str, end: str) -> Iterator[str]:
    """
    Yield every day key from start to end, inclusive, in ascending order.
    Yields nothing when start is after end.
    """
    current = parse_date_key(start)
    last = parse_date_key(end)
    while current <= last:
        yield to_date_key(current)
        current += timedelta(days=1)
