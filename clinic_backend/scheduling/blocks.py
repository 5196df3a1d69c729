"""Block calendar: global and provider blocks -> per-day blocked index."""

from calendar import monthrange
from datetime import date, timedelta
from typing import Iterable, Iterator, NamedTuple, Protocol

GLOBAL_SCOPE = 'global'
PROVIDER_SCOPE = 'provider'


class BlockLike(Protocol):
    provider_id: int | None
    date_from: date
    date_to: date
    reason: str | None
    annual_recurring: bool


class DayBlock(NamedTuple):
    blocked: bool
    reason: str | None
    scope: str


def month_bounds(year: int, month: int) -> tuple[date, date]:
    return date(year, month, 1), date(year, month, monthrange(year, month)[1])


def each_day(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def month_day(day: date) -> tuple[int, int]:
    return day.month, day.day


def occurs_on_annual(day: date, date_from: date, date_to: date) -> bool:
    current = month_day(day)
    start = month_day(date_from)
    end = month_day(date_to)
    if start <= end:
        return start <= current <= end
    # Wraps the new year, e.g. Dec 24 .. Jan 2.
    return current >= start or current <= end


def occurs_on(block: BlockLike, day: date) -> bool:
    if block.annual_recurring:
        return occurs_on_annual(day, block.date_from, block.date_to)
    return block.date_from <= day <= block.date_to


def applies_to(block: BlockLike, provider_id: int | None) -> bool:
    """Global blocks apply to everyone; provider blocks only to their provider."""
    if block.provider_id is None:
        return True
    return provider_id is not None and block.provider_id == provider_id


def covered_days(block: BlockLike, start: date, end: date) -> Iterator[date]:
    if block.annual_recurring:
        for day in each_day(start, end):
            if occurs_on_annual(day, block.date_from, block.date_to):
                yield day
        return

    yield from each_day(max(block.date_from, start), min(block.date_to, end))


def resolve_block_calendar(
    blocks: Iterable[BlockLike],
    start: date,
    end: date,
    provider_id: int | None = None,
) -> dict[date, DayBlock]:
    """Map every blocked date in ``[start, end]`` to its reason.

    When global and provider blocks overlap, the provider's reason wins if it
    has one; otherwise the first non-empty global reason is kept.
    """
    provider_reasons: dict[date, str | None] = {}
    global_reasons: dict[date, str | None] = {}

    for block in blocks:
        if not applies_to(block, provider_id):
            continue
        target = global_reasons if block.provider_id is None else provider_reasons
        reason = (block.reason or '').strip() or None
        for day in covered_days(block, start, end):
            if target.get(day) is None:
                target[day] = reason

    calendar: dict[date, DayBlock] = {}
    for day in sorted(set(provider_reasons) | set(global_reasons)):
        provider_reason = provider_reasons.get(day)
        if provider_reason:
            calendar[day] = DayBlock(True, provider_reason, PROVIDER_SCOPE)
        elif day in global_reasons:
            calendar[day] = DayBlock(True, global_reasons[day], GLOBAL_SCOPE)
        else:
            calendar[day] = DayBlock(True, None, PROVIDER_SCOPE)

    return calendar
