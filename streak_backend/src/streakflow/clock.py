from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from .settings import get_settings
from .utils import parse_date_key, to_date_key


# PUBLIC_INTERFACE
class Clock(ABC):
    """Source of the current local calendar day, as a 'YYYY-MM-DD' key."""

    @abstractmethod
    def now(self) -> str:
        """Return today's date key."""


class SystemClock(Clock):
    """
    Wall clock. With a timezone name the day key is computed in that zone,
    otherwise in the process's local time.
    """

    def __init__(self, timezone: Optional[str] = None) -> None:
        self._tz = ZoneInfo(timezone) if timezone else None

    def now(self) -> str:
        return to_date_key(datetime.now(self._tz).date())


class FixedClock(Clock):
    """Clock pinned to a given day key; `set` moves it."""

    def __init__(self, today: str) -> None:
        self._today = to_date_key(parse_date_key(today))

    def now(self) -> str:
        return self._today

    def set(self, today: str) -> None:
        self._today = to_date_key(parse_date_key(today))


# PUBLIC_INTERFACE
def get_clock() -> Clock:
    """Return the configured system clock."""
    return SystemClock(get_settings().app_timezone)
