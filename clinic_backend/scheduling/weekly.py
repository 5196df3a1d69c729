"""Weekly availability: recurring working intervals -> open minutes for a day.

Weekdays use the backend convention 0=Monday..6=Sunday everywhere.
``normalize_weekday`` is the only place raw values are coerced, so every
caller agrees on which entries apply to a date.
"""

from datetime import date, time
from typing import Iterable, NamedTuple, Protocol

MINUTES_PER_DAY = 24 * 60


class ScheduleEntryLike(Protocol):
    day_of_week: int
    start_time: time
    end_time: time
    active: bool


class OpenInterval(NamedTuple):
    start: int
    end: int


def normalize_weekday(value: int | str) -> int:
    return int(value) % 7


def weekday_of(day: date) -> int:
    return day.weekday()


def to_minutes(value: time | str) -> int:
    if isinstance(value, str):
        hours, _, rest = value.partition(':')
        minutes = rest.split(':', 1)[0] if rest else '0'
        return int(hours) * 60 + int(minutes or 0)
    return value.hour * 60 + value.minute


def minutes_to_time(minutes: int) -> time:
    return time(minutes // 60, minutes % 60)


def open_intervals(entries: Iterable[ScheduleEntryLike], target_date: date) -> list[OpenInterval]:
    """Active intervals for the weekday of ``target_date``, sorted and not merged.

    Overlapping entries are kept as-is; slot generation deduplicates.
    """
    weekday = weekday_of(target_date)
    intervals = []
    for entry in entries:
        if entry.active is False:
            continue
        if normalize_weekday(entry.day_of_week) != weekday:
            continue
        interval = OpenInterval(to_minutes(entry.start_time), to_minutes(entry.end_time))
        if interval.end <= interval.start:
            continue
        intervals.append(interval)

    return sorted(intervals)


def working_weekdays(entries: Iterable[ScheduleEntryLike]) -> set[int]:
    return {
        normalize_weekday(entry.day_of_week)
        for entry in entries
        if entry.active is not False and to_minutes(entry.end_time) > to_minutes(entry.start_time)
    }
