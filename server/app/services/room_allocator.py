"""In-memory seating rules for one hotel's room list.

Nothing here touches the database: callers load a hotel's rooms, let these
functions mutate the list, and persist the result. Every function is
deterministic for a fixed input ordering.
"""

import logging
from collections import Counter
from collections.abc import Iterable

from ..core.observability import metrics_collector
from ..schemas.room import Occupant, Placement, PlacementRule, Room

logger = logging.getLogger(__name__)


def normalize_gender(gender: str | None) -> str | None:
    """Compare genders case-insensitively; blanks count as unknown."""
    if gender is None:
        return None
    gender = gender.strip().lower()
    return gender or None


def rooms_of_type(rooms: list[Room], room_type: str) -> list[Room]:
    return [room for room in rooms if room.room_type == room_type]


def next_room_name(rooms: list[Room], room_type: str) -> str:
    """
    Name for a new room of ``room_type``: ``"<type> <n+1>"`` with n the number
    of rooms of that type, bumped past any label already in use.
    """
    same_type = rooms_of_type(rooms, room_type)
    taken = {room.name for room in rooms}
    number = len(same_type) + 1
    while f"{room_type} {number}" in taken:
        number += 1
    return f"{room_type} {number}"


def create_room(rooms: list[Room], room_type: str, capacity: int) -> Room:
    room = Room(
        name=next_room_name(rooms, room_type),
        room_type=room_type,
        capacity=capacity,
        occupants=[None] * capacity,
    )
    rooms.append(room)
    metrics_collector.record_room_created(room_type)
    logger.info(
        "Room created",
        extra={"room_name": room.name, "room_type": room_type, "capacity": capacity}
    )
    return room


def find_empty_room(rooms: list[Room], room_type: str, min_capacity: int = 1) -> Room | None:
    for room in rooms_of_type(rooms, room_type):
        if room.is_empty and room.capacity >= min_capacity:
            return room
    return None


def find_shared_room(rooms: list[Room], room_type: str, gender: str | None) -> Room | None:
    """First partly filled room of ``room_type`` whose occupants share ``gender``."""
    wanted = normalize_gender(gender)
    for room in rooms_of_type(rooms, room_type):
        if room.is_empty or room.free_slots == 0:
            continue
        if normalize_gender(room.gender) == wanted:
            return room
    return None


def clear_occupants(rooms: list[Room], occupant_ids: Iterable[int]) -> int:
    """Empty every slot holding one of ``occupant_ids``; returns how many were emptied."""
    ids = set(occupant_ids)
    cleared = 0
    for room in rooms:
        for index, occupant in enumerate(room.occupants):
            if occupant is not None and occupant.id in ids:
                room.occupants[index] = None
                cleared += 1
    return cleared


def occupied_rooms(rooms: list[Room]) -> list[Room]:
    return [room for room in rooms if not room.is_empty]


def assigned_ids(rooms: Iterable[Room]) -> set[int]:
    return {occupant.id for room in rooms for occupant in room.seated}


def place_group(
    rooms: list[Room],
    room_type: str,
    members: list[Occupant],
    capacity: int,
) -> list[Placement]:
    """
    Seat ``members`` who all chose ``room_type`` in the same hotel.

    A group that exactly fills one room of this type (and has more than one
    member) is seated together in an empty room. Otherwise each member, in
    list order, joins a partly filled room of their gender, else an empty room
    of the type, else a newly created one.

    Args:
        rooms: The hotel's room list, mutated in place
        room_type: Room type every member selected
        members: Members to seat, in processing order
        capacity: Configured capacity for ``room_type``

    Returns:
        One placement per seated member
    """
    if len(members) > 1 and len(members) == capacity:
        room = find_empty_room(rooms, room_type, min_capacity=len(members))
        if room is None:
            room = create_room(rooms, room_type, capacity)
        for index, member in enumerate(members):
            room.occupants[index] = member
        return [
            Placement(
                occupant_id=member.id,
                room_name=room.name,
                room_type=room_type,
                rule=PlacementRule.FAMILY_FIT,
            )
            for member in members
        ]

    placements = []
    for member in members:
        rule = PlacementRule.SHARED_ROOM
        room = find_shared_room(rooms, room_type, member.gender)
        if room is None:
            rule = PlacementRule.EMPTY_ROOM
            room = find_empty_room(rooms, room_type)
        if room is None:
            rule = PlacementRule.NEW_ROOM
            room = create_room(rooms, room_type, capacity)
        room.seat(member)
        placements.append(
            Placement(occupant_id=member.id, room_name=room.name, room_type=room_type, rule=rule)
        )
    return placements


def mixed_gender_rooms(rooms: list[Room]) -> list[Room]:
    return [
        room for room in rooms
        if len({normalize_gender(occupant.gender) for occupant in room.seated}) > 1
    ]


def layout_violations(rooms: list[Room], family_rooms: Iterable[str] = ()) -> list[str]:
    """
    Seating invariants broken by a room list: over-capacity rooms, rooms
    mixing genders and travelers seated more than once.

    Rooms named in ``family_rooms`` hold a single family and may mix genders,
    as an exact family fit does.
    """
    violations = []
    names = Counter(room.name for room in rooms)
    for name, count in names.items():
        if count > 1:
            violations.append(f"room name '{name}' is used {count} times")

    exempt = set(family_rooms)
    for room in rooms:
        if room.occupant_count > room.capacity:
            violations.append(
                f"room '{room.name}' seats {room.occupant_count} occupants but holds {room.capacity}"
            )
    for room in mixed_gender_rooms(rooms):
        if room.name not in exempt:
            violations.append(f"room '{room.name}' mixes genders")

    seats = Counter(occupant.id for room in rooms for occupant in room.seated)
    for occupant_id, count in sorted(seats.items()):
        if count > 1:
            violations.append(f"booking {occupant_id} is seated {count} times")
    return violations
