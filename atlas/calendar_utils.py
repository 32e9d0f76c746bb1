"""
ATLAS Tracker - Calendar Utilities
Calendar-date strings in one fixed civil timezone.

Every date crossing a module boundary is a canonical ``YYYY-MM-DD`` string.
"Today" is always evaluated in the configured timezone, never server-local
time and never UTC, so streaks, stats and check-ins agree on the day.
"""

import re
from datetime import date, datetime, timedelta
from typing import List, Optional
from zoneinfo import ZoneInfo

from .config import get_app_config


_DATE_RE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")


class DateError(ValueError):
    """A calendar-date string that is not a real ``YYYY-MM-DD`` date."""


def get_zone(tz: Optional[str] = None) -> ZoneInfo:
    """Return the tracker timezone (or an explicit override)."""
    return ZoneInfo(tz or get_app_config().timezone)


def parse_date(value: str) -> date:
    """Parse a strict ``YYYY-MM-DD`` string. Raises DateError otherwise."""
    if not isinstance(value, str) or not _DATE_RE.fullmatch(value):
        raise DateError(f"Invalid date '{value}', expected YYYY-MM-DD")
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise DateError(f"Invalid date '{value}': {e}") from e


def today(tz: Optional[str] = None, now: Optional[datetime] = None) -> str:
    """
    Current calendar date in the tracker timezone.

    Args:
        tz: IANA zone name, defaults to the configured zone
        now: Aware instant to evaluate instead of the wall clock

    Returns:
        Date string ``YYYY-MM-DD``
    """
    zone = get_zone(tz)
    moment = now.astimezone(zone) if now is not None else datetime.now(zone)
    return moment.date().isoformat()


def shift(date_str: str, days: int) -> str:
    """Move a date string by ``days`` (negative goes back)."""
    return (parse_date(date_str) + timedelta(days=days)).isoformat()


def date_offset(n: int, base: Optional[str] = None) -> str:
    """Calendar date ``n`` days before ``base`` (default: today)."""
    return shift(base or today(), -n)


def weekday_of(date_str: str) -> int:
    """Weekday index 0-6 with Sunday=0."""
    # date.weekday() is Monday=0
    return (parse_date(date_str).weekday() + 1) % 7


def date_range(days_ago: int, count: int, base: Optional[str] = None) -> List[str]:
    """
    The ``count`` consecutive dates ending ``days_ago`` days before today.

    Oldest first, e.g. ``date_range(0, 7)`` is the last seven days including
    today and ``date_range(7, 7)`` is the seven days before that.
    """
    end = date_offset(days_ago, base)
    return [shift(end, -i) for i in range(count - 1, -1, -1)]


def week_start(base: Optional[str] = None) -> str:
    """Sunday on or before ``base`` (default: today)."""
    base = base or today()
    return shift(base, -weekday_of(base))


def week_dates(start: str) -> List[str]:
    """Seven dates starting at ``start``."""
    return [shift(start, i) for i in range(7)]
