"""Room assignment: default room first, then the lowest-id free active room."""

from typing import Iterable, Mapping, NamedTuple, Protocol


class RoomLike(Protocol):
    id: int
    label: str
    active: bool


class RoomChoice(NamedTuple):
    room_id: int
    label: str
    is_default: bool


def order_rooms(rooms: Iterable[RoomLike], default_room_id: int | None) -> list[RoomLike]:
    """Active rooms, default room first (if active), the rest by ascending id."""
    active = sorted((room for room in rooms if room.active), key=lambda room: room.id)
    return sorted(active, key=lambda room: room.id != default_room_id)


def preferred_room_id(rooms: Iterable[RoomLike], default_room_id: int | None) -> int | None:
    ordered = order_rooms(rooms, default_room_id)
    return ordered[0].id if ordered else None


def assign_room(
    minutes: int,
    ordered_rooms: Iterable[RoomLike],
    free_by_room: Mapping[int, set[int]],
    default_room_id: int | None,
) -> RoomChoice | None:
    """Pick the room for one candidate time, or ``None`` when every room is taken.

    Evaluated per time: the same day can mix default and fallback rooms.
    """
    for room in ordered_rooms:
        if not room.active:
            continue
        if minutes in free_by_room.get(room.id, ()):
            return RoomChoice(room.id, room.label, room.id == default_room_id)

    return None
