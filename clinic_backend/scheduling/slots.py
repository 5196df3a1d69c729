"""Slot generation for one provider and day.

Composes weekly intervals, the block calendar, room assignment and the
database's free-time sets into the bookable (time, room) list. Everything
is compared in minutes since local midnight; slots are whole hours.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Iterable, Mapping, NamedTuple

from clinic_backend.scheduling.blocks import DayBlock
from clinic_backend.scheduling.rooms import RoomLike, assign_room, order_rooms
from clinic_backend.scheduling.weekly import OpenInterval, minutes_to_time

SLOT_MINUTES = 60
LUNCH_BREAK_START_HOUR = 13
LUNCH_BREAK_END_HOUR = 15


class PreservedSlot(NamedTuple):
    """The booking being edited; stays selectable while it is unchanged."""
    date: date
    minutes: int
    room_id: int
    room_label: str | None = None


@dataclass
class SlotOption:
    time: time
    room_id: int
    room_label: str
    is_default: bool
    is_original: bool = False

    @property
    def minutes(self) -> int:
        return self.time.hour * 60 + self.time.minute


@dataclass
class DaySlots:
    date: date
    morning: list[SlotOption] = field(default_factory=list)
    afternoon: list[SlotOption] = field(default_factory=list)
    blocked: bool = False
    blocked_reason: str | None = None
    unavailable: bool = False

    @property
    def options(self) -> list[SlotOption]:
        return self.morning + self.afternoon

    def find(self, minutes: int, room_id: int | None = None) -> SlotOption | None:
        for option in self.options:
            if option.minutes == minutes and (room_id is None or option.room_id == room_id):
                return option
        return None


def is_lunch_break_minutes(minutes: int) -> bool:
    return LUNCH_BREAK_START_HOUR <= minutes // 60 < LUNCH_BREAK_END_HOUR


def structural_slots(intervals: Iterable[OpenInterval]) -> list[int]:
    """Whole-hour starts that fit inside an interval, minus the lunch gap."""
    starts: set[int] = set()
    for interval in intervals:
        current = -(-interval.start // SLOT_MINUTES) * SLOT_MINUTES
        while current + SLOT_MINUTES <= interval.end:
            if not is_lunch_break_minutes(current):
                starts.add(current)
            current += SLOT_MINUTES

    return sorted(starts)


def lead_cutoff_minutes(now: datetime, lead_time_minutes: int = 0) -> int:
    earliest = now.hour * 60 + now.minute + lead_time_minutes
    return -(-earliest // SLOT_MINUTES) * SLOT_MINUTES


def split_by_period(options: Iterable[SlotOption]) -> tuple[list[SlotOption], list[SlotOption]]:
    morning: list[SlotOption] = []
    afternoon: list[SlotOption] = []
    for option in sorted(options, key=lambda item: item.minutes):
        if option.minutes < LUNCH_BREAK_START_HOUR * 60:
            morning.append(option)
        elif option.minutes >= LUNCH_BREAK_END_HOUR * 60:
            afternoon.append(option)

    return morning, afternoon


def generate_day_slots(
    *,
    target_date: date,
    intervals: Iterable[OpenInterval],
    rooms: Iterable[RoomLike],
    free_by_room: Mapping[int, set[int]],
    now: datetime,
    default_room_id: int | None = None,
    room_id: int | None = None,
    day_block: DayBlock | None = None,
    lead_time_minutes: int = 0,
    preserve: PreservedSlot | None = None,
) -> DaySlots:
    """Bookable options for ``target_date``.

    ``free_by_room`` is the authoritative free-minute set per room from the
    system of record; a time is offered only if it is free there. With
    ``room_id`` only that room is considered, otherwise the default room is
    preferred per time. ``preserve`` keeps the booking under edit on offer
    even when the lead-time cutoff or a fresh computation would drop it.
    """
    preserving = preserve is not None and preserve.date == target_date
    blocked = day_block is not None and day_block.blocked
    result = DaySlots(
        date=target_date,
        blocked=blocked,
        blocked_reason=day_block.reason if day_block else None,
    )

    if blocked and not preserving:
        return result

    rooms = list(rooms)
    if room_id is None:
        candidate_rooms = order_rooms(rooms, default_room_id)
    else:
        candidate_rooms = [room for room in rooms if room.id == room_id and room.active]

    candidates = [] if blocked else structural_slots(intervals)

    today = now.date()
    if target_date < today:
        # A past day offers nothing new; only the booking under edit remains.
        candidates = []
    elif target_date == today:
        cutoff = lead_cutoff_minutes(now, lead_time_minutes)
        candidates = [
            minutes for minutes in candidates
            if minutes >= cutoff or (preserving and minutes == preserve.minutes)
        ]

    options: dict[int, SlotOption] = {}
    for minutes in candidates:
        choice = assign_room(minutes, candidate_rooms, free_by_room, default_room_id)
        if choice is None:
            continue
        options[minutes] = SlotOption(
            time=minutes_to_time(minutes),
            room_id=choice.room_id,
            room_label=choice.label,
            is_default=choice.is_default,
        )

    if preserving and (room_id is None or room_id == preserve.room_id):
        _keep_preserved(options, preserve, free_by_room, default_room_id)

    result.morning, result.afternoon = split_by_period(options.values())
    return result


def _keep_preserved(
    options: dict[int, SlotOption],
    preserve: PreservedSlot,
    free_by_room: Mapping[int, set[int]],
    default_room_id: int | None,
) -> None:
    # Lunch has no exceptions; a time held by another appointment is not offered.
    if is_lunch_break_minutes(preserve.minutes):
        return
    if preserve.minutes not in free_by_room.get(preserve.room_id, ()):
        return

    current = options.get(preserve.minutes)
    if current is not None and current.room_id == preserve.room_id:
        current.is_original = True
        return

    options[preserve.minutes] = SlotOption(
        time=minutes_to_time(preserve.minutes),
        room_id=preserve.room_id,
        room_label=preserve.room_label or f'Room {preserve.room_id}',
        is_default=preserve.room_id == default_room_id,
        is_original=True,
    )
