"""
Recurrence expansion for recurring reservations.

A recurring reservation is stored once, as its first occurrence plus a pattern
and an end condition. Everything that needs concrete intervals (conflict
checks, calendar views) expands it on demand with expand_occurrences().
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Iterator, Optional
from dateutil.relativedelta import relativedelta


class RecurrencePattern(str, Enum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


class RecurrenceEndType(str, Enum):
    NEVER = "never"
    COUNT = "count"
    DATE = "date"


_STEPS = {
    RecurrencePattern.DAILY: relativedelta(days=1),
    RecurrencePattern.WEEKLY: relativedelta(weeks=1),
    RecurrencePattern.BIWEEKLY: relativedelta(weeks=2),
    RecurrencePattern.MONTHLY: relativedelta(months=1),
}

# Upper bound for open-ended ("never") series
MAX_OCCURRENCES = {
    RecurrencePattern.DAILY: 365,
    RecurrencePattern.WEEKLY: 52,
    RecurrencePattern.BIWEEKLY: 52,
    RecurrencePattern.MONTHLY: 24,
}

# Occurrences may start up to a day past the window end and still be considered
WINDOW_GUARD = timedelta(days=1)


@dataclass(frozen=True)
class EndCondition:
    type: RecurrenceEndType = RecurrenceEndType.NEVER
    count: Optional[int] = None
    end_date: Optional[date] = None

    @classmethod
    def never(cls):
        return cls(RecurrenceEndType.NEVER)

    @classmethod
    def after(cls, count: int):
        return cls(RecurrenceEndType.COUNT, count=count)

    @classmethod
    def until(cls, end_date: date):
        return cls(RecurrenceEndType.DATE, end_date=end_date)


@dataclass(frozen=True)
class RecurrenceSeed:
    start: datetime
    end: datetime
    pattern: RecurrencePattern
    end_condition: EndCondition = EndCondition()


@dataclass(frozen=True)
class Occurrence:
    index: int
    start: datetime
    end: datetime


@dataclass(frozen=True)
class OccurrenceRef:
    """Identifies one occurrence of a reservation (index 0 for one-off bookings)."""

    parent_id: int
    occurrence_index: int


def _last_instant(end_date: date, tzinfo) -> datetime:
    return datetime.combine(end_date, time(23, 59, 59, 999000), tzinfo=tzinfo)


def occurrence_start(seed: RecurrenceSeed, index: int) -> datetime:
    # Offsets are taken from the seed so monthly series keep their day of month
    return seed.start + _STEPS[seed.pattern] * index


def expand_occurrences(
    seed: RecurrenceSeed,
    window_start: Optional[datetime],
    window_end: Optional[datetime],
) -> Iterator[Occurrence]:
    """
    Yield the occurrences of a series that overlap [window_start, window_end).

    Occurrence 0 is the seed itself. Either window bound may be None for an
    unbounded side. Every call returns a fresh generator, nothing is cached.
    """
    pattern = RecurrencePattern(seed.pattern)
    if pattern == RecurrencePattern.NONE:
        if _in_window(seed.start, seed.end, window_start, window_end):
            yield Occurrence(0, seed.start, seed.end)
        return

    condition = seed.end_condition
    duration = seed.end - seed.start
    limit = None
    cap = MAX_OCCURRENCES[pattern]
    if condition.type == RecurrenceEndType.COUNT:
        cap = condition.count or 0
    elif condition.type == RecurrenceEndType.DATE and condition.end_date is not None:
        limit = _last_instant(condition.end_date, seed.start.tzinfo)
        cap = None
    guard = window_end + WINDOW_GUARD if window_end is not None else None

    index = 0
    while True:
        if cap is not None and index >= cap:
            break
        start = occurrence_start(seed, index)
        if limit is not None and start > limit:
            break
        if guard is not None and start > guard:
            break
        end = start + duration
        if _in_window(start, end, window_start, window_end):
            yield Occurrence(index, start, end)
        index += 1


def _in_window(start, end, window_start, window_end):
    if window_end is not None and not start < window_end:
        return False
    if window_start is not None and not end > window_start:
        return False
    return True
