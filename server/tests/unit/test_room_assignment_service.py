"""Unit tests for the room assignment service."""

import pytest
from sqlalchemy import select

from app.core.exceptions import RoomLayoutError
from app.models import BookingStatus, Program, RoomManagement
from app.schemas.room import Occupant, PlacementRule, Room
from app.services.room_assignment_service import RoomAssignmentService, snapshot
from app.services.room_repository import RoomRepository


async def rooms_of(session, tenant_id, program, hotel_name):
    _, rooms = await RoomRepository(session).get_rooms_for_hotel(tenant_id, program.id, hotel_name, for_update=False)
    return rooms


def layout(rooms):
    """Comparable view of a room list: names, types and occupant IDs per slot."""
    return [(room.name, room.room_type, [o.id if o else None for o in room.occupants]) for room in rooms]


@pytest.mark.asyncio
async def test_family_of_two_fills_one_double(test_session, make_booking, program, tenant_id):
    member = await make_booking("Sara", "female")
    leader = await make_booking("Amina", "female", related=[member])

    placements = await RoomAssignmentService(test_session).assign(tenant_id, leader)

    rooms = await rooms_of(test_session, tenant_id, program, "Hilton")
    assert layout(rooms) == [("Double 1", "Double", [leader.id, member.id])]
    assert {p.rule for p in placements} == {PlacementRule.FAMILY_FIT}
    assert {p.hotel_name for p in placements} == {"Hilton"}


@pytest.mark.asyncio
async def test_unrelated_booking_gets_new_room_when_first_is_full(test_session, make_booking, program, tenant_id):
    member = await make_booking("Sara", "female")
    leader = await make_booking("Amina", "female", related=[member])
    service = RoomAssignmentService(test_session)
    await service.assign(tenant_id, leader)

    other = await make_booking("Khadija", "female")
    placements = await service.assign(tenant_id, other)

    rooms = await rooms_of(test_session, tenant_id, program, "Hilton")
    assert layout(rooms) == [
        ("Double 1", "Double", [leader.id, member.id]),
        ("Double 2", "Double", [other.id, None]),
    ]
    assert placements[0].rule == PlacementRule.NEW_ROOM


@pytest.mark.asyncio
async def test_family_larger_than_room_is_placed_individually(test_session, make_booking, program, tenant_id):
    first = await make_booking("Sara", "female")
    second = await make_booking("Maryam", "female")
    leader = await make_booking("Amina", "female", related=[first, second])

    await RoomAssignmentService(test_session).assign(tenant_id, first.id)

    rooms = await rooms_of(test_session, tenant_id, program, "Hilton")
    assert layout(rooms) == [
        ("Double 1", "Double", [leader.id, first.id]),
        ("Double 2", "Double", [second.id, None]),
    ]


@pytest.mark.asyncio
async def test_mixed_gender_individuals_do_not_share(test_session, make_booking, program, tenant_id):
    man = await make_booking("Omar", "male")
    woman = await make_booking("Khadija", "female")
    service = RoomAssignmentService(test_session)

    await service.assign(tenant_id, man)
    await service.assign(tenant_id, woman)

    rooms = await rooms_of(test_session, tenant_id, program, "Hilton")
    assert layout(rooms) == [
        ("Double 1", "Double", [man.id, None]),
        ("Double 2", "Double", [woman.id, None]),
    ]


@pytest.mark.asyncio
async def test_assign_is_idempotent(test_session, make_booking, program, tenant_id):
    member = await make_booking("Sara", "female")
    leader = await make_booking("Amina", "female", related=[member])
    other = await make_booking("Khadija", "female", selected_hotel={
        "cities": ["Mecca"], "hotelNames": ["Hilton"], "roomTypes": ["Triple"]
    })
    service = RoomAssignmentService(test_session)

    await service.assign(tenant_id, leader)
    await service.assign(tenant_id, other)
    before = layout(await rooms_of(test_session, tenant_id, program, "Hilton"))

    await service.assign(tenant_id, leader)
    await service.assign(tenant_id, leader)

    assert layout(await rooms_of(test_session, tenant_id, program, "Hilton")) == before


@pytest.mark.asyncio
async def test_assign_covers_every_city(test_session, make_booking, program, tenant_id, itinerary):
    trip = itinerary(("Mecca", "Hilton", "Double"), ("Medina", "Pullman", "Quad"))
    member = await make_booking("Sara", "female", selected_hotel=trip)
    leader = await make_booking("Amina", "female", selected_hotel=trip, related=[member])

    placements = await RoomAssignmentService(test_session).assign(tenant_id, leader)

    assert len(placements) == 4
    assert layout(await rooms_of(test_session, tenant_id, program, "Pullman")) == [
        ("Quad 1", "Quad", [leader.id, member.id, None, None]),
    ]


@pytest.mark.asyncio
async def test_revisited_city_seats_traveler_once_per_hotel(test_session, make_booking, program, tenant_id, itinerary):
    trip = itinerary(("Mecca", "Hilton", "Double"), ("Medina", "Pullman", "Double"), ("Mecca", "Hilton", "Triple"))
    solo = await make_booking("Omar", "male", selected_hotel=trip)
    service = RoomAssignmentService(test_session)

    await service.assign(tenant_id, solo)

    assert layout(await rooms_of(test_session, tenant_id, program, "Hilton")) == [
        ("Double 1", "Double", [solo.id, None]),
    ]

    # The generated layout is accepted back by a manual save
    rooms, persisted = await service.get_rooms(tenant_id, program.id, "Hilton")
    assert persisted is True
    saved = await service.save_rooms(tenant_id, program.id, "Hilton", rooms)
    assert layout(saved) == [("Double 1", "Double", [solo.id, None])]


@pytest.mark.asyncio
async def test_assign_locks_every_hotel_in_name_order_first(
    test_session, make_booking, program, tenant_id, itinerary, monkeypatch
):
    locked = []

    async def record_lock(self, tenant_id, program_id, hotel_name):
        locked.append(hotel_name)

    monkeypatch.setattr(RoomRepository, "lock_hotel", record_lock)
    solo = await make_booking(
        "Omar", "male", selected_hotel=itinerary(("Medina", "Pullman", "Double"), ("Mecca", "Hilton", "Double"))
    )

    await RoomAssignmentService(test_session).assign(tenant_id, solo)

    assert locked[:3] == ["Hilton", "Pullman", "Sheraton"]


@pytest.mark.asyncio
async def test_members_with_different_choices_are_grouped_separately(
    test_session, make_booking, program, tenant_id, itinerary
):
    member = await make_booking("Yusuf", "male", selected_hotel=itinerary(("Mecca", "Hilton", "Triple")))
    leader = await make_booking("Amina", "female", related=[member])

    await RoomAssignmentService(test_session).assign(tenant_id, leader)

    assert layout(await rooms_of(test_session, tenant_id, program, "Hilton")) == [
        ("Double 1", "Double", [leader.id, None]),
        ("Triple 1", "Triple", [member.id, None, None]),
    ]


@pytest.mark.asyncio
async def test_member_without_choice_for_city_is_skipped(test_session, make_booking, program, tenant_id, itinerary):
    member = await make_booking("Sara", "female", selected_hotel=itinerary(("Mecca", "", "")))
    leader = await make_booking("Amina", "female", related=[member])

    placements = await RoomAssignmentService(test_session).assign(tenant_id, leader)

    assert [p.occupant_id for p in placements] == [leader.id]


@pytest.mark.asyncio
async def test_changed_choice_leaves_no_stale_seat(test_session, make_booking, program, tenant_id, itinerary):
    solo = await make_booking("Omar", "male")
    service = RoomAssignmentService(test_session)
    await service.assign(tenant_id, solo)

    solo.selected_hotel = itinerary(("Mecca", "Sheraton", "Single"))
    await test_session.flush()
    await service.assign(tenant_id, solo)

    assert await rooms_of(test_session, tenant_id, program, "Hilton") == []
    assert layout(await rooms_of(test_session, tenant_id, program, "Sheraton")) == [
        ("Single 1", "Single", [solo.id]),
    ]


@pytest.mark.asyncio
async def test_member_on_another_program_is_not_seated(test_session, make_booking, program, tenant_id):
    other_program = Program(user_id=tenant_id, name="Hajj", packages=program.packages)
    test_session.add(other_program)
    await test_session.flush()

    member = await make_booking("Sara", "female")
    leader = await make_booking("Amina", "female", related=[member])
    member.trip_id = other_program.id
    await test_session.flush()

    placements = await RoomAssignmentService(test_session).assign(tenant_id, leader)

    assert [p.occupant_id for p in placements] == [leader.id]


@pytest.mark.asyncio
async def test_assign_missing_booking_is_noop(test_session, program, tenant_id):
    assert await RoomAssignmentService(test_session).assign(tenant_id, 4242) == []


@pytest.mark.asyncio
async def test_remove_from_city_clears_only_that_city(test_session, make_booking, program, tenant_id, itinerary):
    trip = itinerary(("Mecca", "Hilton", "Double"), ("Medina", "Pullman", "Double"))
    solo = await make_booking("Omar", "male", selected_hotel=trip)
    other = await make_booking("Yusuf", "male", selected_hotel=trip)
    service = RoomAssignmentService(test_session)
    await service.assign(tenant_id, solo)
    await service.assign(tenant_id, other)

    cleared = await service.remove_from_city(tenant_id, program.id, "Mecca", [solo.id])

    assert cleared == 1
    assert layout(await rooms_of(test_session, tenant_id, program, "Hilton")) == [
        ("Double 1", "Double", [None, other.id]),
    ]
    assert layout(await rooms_of(test_session, tenant_id, program, "Pullman")) == [
        ("Double 1", "Double", [solo.id, other.id]),
    ]


@pytest.mark.asyncio
async def test_remove_from_program_clears_family_and_deletes_empty_records(
    test_session, make_booking, program, tenant_id, itinerary
):
    trip = itinerary(("Mecca", "Hilton", "Double"), ("Medina", "Pullman", "Double"))
    member = await make_booking("Sara", "female", selected_hotel=trip)
    leader = await make_booking("Amina", "female", selected_hotel=trip, related=[member])
    service = RoomAssignmentService(test_session)
    await service.assign(tenant_id, leader)

    cleared = await service.remove_from_program(tenant_id, program.id, member.id)

    assert cleared == 4
    result = await test_session.execute(select(RoomManagement))
    assert result.scalars().all() == []


@pytest.mark.asyncio
async def test_completeness_check(test_session, make_booking, program, tenant_id, itinerary):
    trip = itinerary(("Mecca", "Hilton", "Double"), ("Medina", "Pullman", "Double"))
    member = await make_booking("Sara", "female", selected_hotel=trip)
    leader = await make_booking("Amina", "female", selected_hotel=trip, related=[member])
    service = RoomAssignmentService(test_session)

    assert not await service.is_fully_assigned(tenant_id, program.id, leader)

    await service.assign(tenant_id, leader)
    assert await service.is_fully_assigned(tenant_id, program.id, leader)
    assert await service.is_fully_assigned(tenant_id, program.id, member)

    await service.remove_from_city(tenant_id, program.id, "Medina", [member.id])
    assert not await service.is_fully_assigned(tenant_id, program.id, leader)


@pytest.mark.asyncio
async def test_completeness_ignores_member_on_another_program(test_session, make_booking, program, tenant_id):
    other_program = Program(user_id=tenant_id, name="Hajj", packages=program.packages)
    test_session.add(other_program)
    await test_session.flush()

    member = await make_booking("Sara", "female")
    leader = await make_booking("Amina", "female", related=[member])
    member.trip_id = other_program.id
    await test_session.flush()
    service = RoomAssignmentService(test_session)
    await service.assign(tenant_id, leader)

    assert await service.is_fully_assigned(tenant_id, program.id, leader)
    assert await service.sync_after_update(tenant_id, snapshot(leader), leader) is False


@pytest.mark.asyncio
async def test_completeness_without_hotels_is_trivially_true(test_session, make_booking, program, tenant_id):
    solo = await make_booking("Omar", selected_hotel={})

    assert await RoomAssignmentService(test_session).is_fully_assigned(tenant_id, program.id, solo)


@pytest.mark.asyncio
async def test_cosmetic_update_keeps_rooms(test_session, make_booking, program, tenant_id):
    solo = await make_booking("Omar", "male")
    service = RoomAssignmentService(test_session)
    await service.assign(tenant_id, solo)
    previous = snapshot(solo)

    solo.client_name = "Omar B."
    await test_session.flush()

    assert not await service.sync_after_update(tenant_id, previous, solo)


@pytest.mark.asyncio
async def test_key_field_update_reassigns(test_session, make_booking, program, tenant_id):
    first = await make_booking("Omar", "male")
    second = await make_booking("Yusuf", "male")
    service = RoomAssignmentService(test_session)
    await service.assign(tenant_id, first)
    await service.assign(tenant_id, second)
    previous = snapshot(first)

    first.gender = "female"
    await test_session.flush()

    assert await service.sync_after_update(tenant_id, previous, first)
    assert layout(await rooms_of(test_session, tenant_id, program, "Hilton")) == [
        ("Double 1", "Double", [None, second.id]),
        ("Double 2", "Double", [first.id, None]),
    ]


@pytest.mark.asyncio
async def test_unassigned_booking_is_reassigned_on_update(test_session, make_booking, program, tenant_id):
    solo = await make_booking("Omar", "male")
    service = RoomAssignmentService(test_session)

    assert await service.sync_after_update(tenant_id, snapshot(solo), solo)
    assert await service.is_fully_assigned(tenant_id, program.id, solo)


@pytest.mark.asyncio
async def test_sync_booking_follows_status(test_session, make_booking, program, tenant_id):
    solo = await make_booking("Omar", "male")
    service = RoomAssignmentService(test_session)

    assert len(await service.sync_booking(tenant_id, solo)) == 1

    solo.status = BookingStatus.REJECTED
    await test_session.flush()

    assert await service.sync_booking(tenant_id, solo) == []
    assert await rooms_of(test_session, tenant_id, program, "Hilton") == []


@pytest.mark.asyncio
async def test_rename_occupant_updates_every_seat(test_session, make_booking, program, tenant_id, itinerary):
    solo = await make_booking("Omar", "male", selected_hotel=itinerary(
        ("Mecca", "Hilton", "Double"), ("Medina", "Pullman", "Double")
    ))
    service = RoomAssignmentService(test_session)
    await service.assign(tenant_id, solo)

    updated = await service.rename_occupant(tenant_id, program.id, solo.id, "Omar Benali")

    assert updated == 2
    rooms = await rooms_of(test_session, tenant_id, program, "Pullman")
    assert rooms[0].occupants[0].client_name == "Omar Benali"


@pytest.mark.asyncio
async def test_get_rooms_returns_template_for_new_hotel(test_session, program, tenant_id):
    rooms, persisted = await RoomAssignmentService(test_session).get_rooms(tenant_id, program.id, "Sheraton")

    assert not persisted
    assert [(room.name, room.capacity, room.is_empty) for room in rooms] == [
        ("Single 1", 1, True),
        ("Double 1", 2, True),
    ]
    result = await test_session.execute(select(RoomManagement))
    assert result.scalars().all() == []


@pytest.mark.asyncio
async def test_get_rooms_returns_stored_rooms(test_session, make_booking, program, tenant_id):
    solo = await make_booking("Omar", "male")
    service = RoomAssignmentService(test_session)
    await service.assign(tenant_id, solo)

    rooms, persisted = await service.get_rooms(tenant_id, program.id, "Hilton")

    assert persisted
    assert layout(rooms) == [("Double 1", "Double", [solo.id, None])]


@pytest.mark.asyncio
async def test_save_rooms_rejects_mixed_genders(test_session, make_booking, program, tenant_id):
    man = await make_booking("Omar", "male")
    woman = await make_booking("Khadija", "female")
    rooms = [
        Room(name="Double 1", room_type="Double", capacity=2, occupants=[
            Occupant(id=man.id, client_name=man.client_name, gender=man.gender),
            Occupant(id=woman.id, client_name=woman.client_name, gender=woman.gender),
        ])
    ]

    with pytest.raises(RoomLayoutError) as exc_info:
        await RoomAssignmentService(test_session).save_rooms(tenant_id, program.id, "Hilton", rooms)

    assert exc_info.value.problem_details["code"] == "INVALID_ROOM_LAYOUT"


@pytest.mark.asyncio
async def test_save_rooms_accepts_mixed_gender_family(test_session, make_booking, program, tenant_id):
    member = await make_booking("Yusuf", "male")
    leader = await make_booking("Amina", "female", related=[member])
    service = RoomAssignmentService(test_session)
    await service.assign(tenant_id, leader)
    rooms, _ = await service.get_rooms(tenant_id, program.id, "Hilton")

    saved = await service.save_rooms(tenant_id, program.id, "Hilton", rooms + [
        Room(name="Double 2", room_type="Double", capacity=2),
    ])

    assert layout(saved) == [("Double 1", "Double", [leader.id, member.id])]


@pytest.mark.asyncio
async def test_search_unassigned_occupants(test_session, make_booking, program, tenant_id):
    seated = await make_booking("Omar Benali", "male")
    waiting = await make_booking("Omar Idrissi", "male", selected_hotel={})
    await make_booking("Khadija", "female", selected_hotel={})
    service = RoomAssignmentService(test_session)
    await service.assign(tenant_id, seated)

    found = await service.search_unassigned_occupants(tenant_id, program.id, "Hilton", "omar")

    assert [booking.id for booking in found] == [waiting.id]
    assert len(await service.search_unassigned_occupants(tenant_id, program.id, "Hilton")) == 2
