"""
ATLAS Tracker - Habit Schedules
A schedule is the set of weekdays (Sunday=0 .. Saturday=6) a habit is due on,
stored as a canonical sorted, comma-separated string such as ``"1,3,5"``.
"""

import re
from typing import FrozenSet, Iterable, Optional, Union

from . import calendar_utils as cal


ALL_DAYS = frozenset(range(7))
DEFAULT_SCHEDULE = "0,1,2,3,4,5,6"

# ASCII only: str.isdigit() also accepts superscripts and other scripts
_WEEKDAY_RE = re.compile(r"[0-6]")

ScheduleLike = Union[str, Iterable[int], None]


class ScheduleError(ValueError):
    """Raised for schedule strings that cannot be stored."""


def parse(schedule: Optional[str]) -> FrozenSet[int]:
    """
    Parse a schedule string into a set of weekday indices.

    A missing schedule (None) means every day. Duplicates and surrounding
    whitespace are accepted; an empty string or anything that is not a
    weekday 0-6 raises ScheduleError.
    """
    if schedule is None:
        return ALL_DAYS
    if not schedule.strip():
        raise ScheduleError("Schedule must include at least one weekday")

    days = set()
    for token in schedule.split(","):
        token = token.strip()
        if not _WEEKDAY_RE.fullmatch(token):
            raise ScheduleError(f"Invalid weekday '{token}' in schedule '{schedule}', expected 0-6")
        days.add(int(token))

    return frozenset(days)


def canonicalize(weekdays: Iterable[int]) -> str:
    """Sorted, comma-joined form of a non-empty weekday set."""
    days = set(weekdays)
    if not days:
        raise ScheduleError("Schedule must include at least one weekday")
    invalid = days - ALL_DAYS
    if invalid:
        raise ScheduleError(f"Weekdays out of range 0-6: {sorted(invalid)}")
    return ",".join(str(d) for d in sorted(days))


def normalize(schedule: Optional[str]) -> str:
    """Validate and canonicalize a schedule string in one step."""
    return canonicalize(parse(schedule))


def as_weekdays(schedule: ScheduleLike) -> FrozenSet[int]:
    """Accept either a schedule string or an iterable of weekdays."""
    if schedule is None or isinstance(schedule, str):
        return parse(schedule)
    return frozenset(schedule)


def is_scheduled(schedule: ScheduleLike, weekday: int) -> bool:
    return weekday in as_weekdays(schedule)


def is_scheduled_on(schedule: ScheduleLike, date_str: str) -> bool:
    return cal.weekday_of(date_str) in as_weekdays(schedule)


def is_scheduled_today(schedule: ScheduleLike, today: Optional[str] = None) -> bool:
    return is_scheduled_on(schedule, today or cal.today())
