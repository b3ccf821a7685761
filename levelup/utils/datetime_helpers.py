"""
Clock and calendar-day utilities

The engine never reads the wall clock directly. Components receive a
Clock so tests can simulate day rollover:
- SystemClock reads the real time in a fixed timezone
- FixedClock returns a pinned instant and can be advanced

CRITICAL RULES:
- now() is always timezone-aware
- Day differences are counted in calendar days, never elapsed seconds
- Never mix naive and aware datetimes
"""

import logging
from datetime import datetime, date, timedelta
from typing import Optional, Protocol, Union
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "UTC"


class Clock(Protocol):
    """Source of the current instant and calendar day"""

    def now(self) -> datetime:
        ...

    def today(self) -> date:
        ...


class SystemClock:
    """Wall clock in a fixed timezone"""

    def __init__(self, tz: Union[str, ZoneInfo, None] = None):
        if tz is None:
            from levelup import config
            tz = config.TIMEZONE
        self.tz = tz if isinstance(tz, ZoneInfo) else ZoneInfo(tz)

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def today(self) -> date:
        return self.now().date()


class FixedClock:
    """Pinned clock for tests and replays"""

    def __init__(self, current: datetime):
        self._current = ensure_aware(current)

    def now(self) -> datetime:
        return self._current

    def today(self) -> date:
        return self._current.date()

    def set(self, current: datetime) -> None:
        self._current = ensure_aware(current)

    def advance(self, **kwargs) -> datetime:
        """Move the clock forward, e.g. advance(days=1, hours=2)"""
        self._current = self._current + timedelta(**kwargs)
        return self._current


def ensure_aware(dt: datetime, tz: Optional[ZoneInfo] = None) -> datetime:
    """
    Attach a timezone to naive datetimes

    Args:
        dt: Datetime to normalize
        tz: Timezone to assume for naive input (defaults to UTC)

    Returns:
        Timezone-aware datetime
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz or ZoneInfo(DEFAULT_TIMEZONE))
        logger.debug(f"Received naive datetime, assuming {dt.tzinfo}: {dt}")
    return dt


def calendar_days_between(earlier: date, later: date) -> int:
    """
    Number of calendar days from earlier to later

    Datetimes are reduced to their calendar day first, so 23:59 -> 00:01
    the next morning counts as one day.
    """
    if isinstance(earlier, datetime):
        earlier = earlier.date()
    if isinstance(later, datetime):
        later = later.date()
    return (later - earlier).days


def iso_week_key(day: date) -> str:
    """ISO week identifier such as '2026-W42'"""
    year, week, _ = day.isocalendar()
    return f"{year}-W{week:02d}"


def week_start(day: date) -> date:
    """Monday of the ISO week containing day"""
    return day - timedelta(days=day.weekday())
