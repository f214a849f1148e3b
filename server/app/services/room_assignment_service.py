"""Room assignment service: seats families in hotel rooms and keeps seating consistent."""

import logging
import time
from collections.abc import Iterable
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.exceptions import RoomLayoutError
from ..core.observability import get_tracer, metrics_collector
from ..models.booking import Booking, BookingStatus
from ..models.program import Program
from ..schemas.booking import BookingSnapshot
from ..schemas.program import ProgramConfig
from ..schemas.room import Occupant, Placement, Room
from . import room_allocator
from .family_service import FamilyService
from .program_service import ProgramService, capacity_for, hotels_for_city, room_types_for_hotel
from .room_repository import RoomRepository

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)


def _occupant_for(booking: Booking) -> Occupant:
    return Occupant(id=booking.id, client_name=booking.client_name, gender=booking.gender)


class RoomAssignmentService:
    """
    Service for seating travelers in rooms.

    Every method runs inside the caller's transaction on the session passed
    in: changes are flushed, never committed, so a failure anywhere rolls the
    booking change and the seating back together.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.family_service = FamilyService(db)
        self.program_service = ProgramService(db)
        self.rooms = RoomRepository(db)

    async def resolve_family(self, tenant_id: int, booking_id: int) -> list[Booking]:
        """Full family of any member; empty when the booking does not exist."""
        return await self.family_service.resolve_family(tenant_id, booking_id)

    async def assign(self, tenant_id: int, booking: Booking | int) -> list[Placement]:
        """
        Seat the whole family of ``booking`` in every city of its itinerary.

        For each city the family's previous seats there are cleared first, so
        running this again for an unchanged family reproduces the same rooms.
        Members are then grouped by the (hotel, room type) they chose for the
        city and each group is seated with the allocator rules.

        Args:
            tenant_id: Owning tenant ID
            booking: The booking that triggered the pass, or its ID

        Returns:
            One placement per seated member per city; empty when the booking
            or its program does not exist
        """
        booking_id = booking if isinstance(booking, int) else booking.id
        started = time.perf_counter()

        with tracer.start_as_current_span("rooms.assign") as span:
            span.set_attribute("tenant_id", tenant_id)
            span.set_attribute("booking_id", booking_id)

            family = await self.family_service.resolve_family(tenant_id, booking_id)
            if not family:
                metrics_collector.record_allocation_pass("skipped")
                return []

            trigger = next((member for member in family if member.id == booking_id), family[0])
            program = await self.program_service.get_program(tenant_id, trigger.trip_id)
            if program is None:
                logger.warning(
                    "Room allocation skipped - program not found",
                    extra={"tenant_id": tenant_id, "booking_id": booking_id, "program_id": trigger.trip_id}
                )
                metrics_collector.record_allocation_pass("skipped")
                return []

            # Members moved to another program keep their seats there
            members = [member for member in family if member.trip_id == program.id]
            member_ids = [member.id for member in members]
            config = program.config

            logger.info(
                "Room allocation started",
                extra={
                    "tenant_id": tenant_id,
                    "program_id": program.id,
                    "booking_id": booking_id,
                    "family_ids": member_ids
                }
            )

            plan = []
            for city in self._cities_in_order(members):
                groups = self._group_by_hotel_and_room_type(members, city)

                # Clearing precedes seating in every hotel of the city
                hotel_names = hotels_for_city(config, city)
                for hotel_name, _ in groups:
                    if hotel_name not in hotel_names:
                        hotel_names.append(hotel_name)
                plan.append((city, groups, hotel_names))

            await self.rooms.lock_hotels(
                tenant_id, program.id, [hotel_name for _, _, hotel_names in plan for hotel_name in hotel_names]
            )

            placements: list[Placement] = []
            for city, groups, hotel_names in plan:
                cleared = 0
                for hotel_name in hotel_names:
                    hotel_groups = {
                        room_type: group for (group_hotel, room_type), group in groups.items()
                        if group_hotel == hotel_name
                    }
                    hotel_cleared, hotel_placements = await self._reseat_in_hotel(
                        tenant_id, program.id, config, hotel_name, member_ids, hotel_groups
                    )
                    cleared += hotel_cleared
                    placements.extend(hotel_placements)
                self._log_city_removal(tenant_id, program.id, city, member_ids, cleared)

            span.set_attribute("placements", len(placements))

        duration = time.perf_counter() - started
        metrics_collector.record_allocation_pass("assigned", duration)
        for placement in placements:
            metrics_collector.record_occupant_placed(placement.rule.value)

        logger.info(
            "Room allocation completed",
            extra={
                "tenant_id": tenant_id,
                "program_id": program.id,
                "booking_id": booking_id,
                "placements": len(placements),
                "duration_ms": round(duration * 1000, 2)
            }
        )
        return placements

    async def remove_from_city(
        self,
        tenant_id: int,
        program_id: int,
        city: str,
        occupant_ids: Iterable[int],
    ) -> int:
        """
        Unseat ``occupant_ids`` from every hotel the program offers in ``city``.

        Returns:
            Number of occupant slots emptied; 0 when the program does not exist
        """
        program = await self.program_service.get_program(tenant_id, program_id)
        if program is None:
            logger.warning(
                "City removal skipped - program not found",
                extra={"tenant_id": tenant_id, "program_id": program_id, "city": city}
            )
            return 0
        return await self._remove_from_city(tenant_id, program, program.config, city, list(occupant_ids))

    async def remove_from_program(self, tenant_id: int, program_id: int, occupant_id: int) -> int:
        """
        Unseat the whole family of ``occupant_id`` from every hotel of the program.

        Used before a booking is deleted or has its key fields changed, since
        its old seats may span several hotels.

        Returns:
            Number of occupant slots emptied
        """
        with tracer.start_as_current_span("rooms.remove_from_program") as span:
            span.set_attribute("tenant_id", tenant_id)
            span.set_attribute("program_id", program_id)

            family = await self.family_service.resolve_family(tenant_id, occupant_id)
            ids = {occupant_id} | {member.id for member in family}
            cleared = await self._clear_ids_in_program(tenant_id, program_id, ids)

        metrics_collector.record_slots_cleared("program", cleared)
        logger.info(
            "Family removed from program rooms",
            extra={
                "tenant_id": tenant_id,
                "program_id": program_id,
                "occupant_ids": sorted(ids),
                "slots_cleared": cleared
            }
        )
        return cleared

    async def is_fully_assigned(self, tenant_id: int, program_id: int, booking: Booking) -> bool:
        """
        Whether every family member is seated in every hotel ``booking`` requires.

        Hotels come from the booking's own selection; a booking without any
        selected hotel is trivially fully assigned.
        """
        required_hotels = booking.hotel_selection.required_hotels()
        if not required_hotels:
            return True

        family = await self.family_service.resolve_family(tenant_id, booking.id)
        # Members on another program are never seated in this one
        member_ids = [member.id for member in family if member.trip_id == program_id] or [booking.id]

        for hotel_name in required_hotels:
            seated = await self.rooms.get_assigned_occupant_ids(tenant_id, program_id, hotel_name)
            missing = [member_id for member_id in member_ids if member_id not in seated]
            if missing:
                logger.debug(
                    "Family not fully assigned",
                    extra={"booking_id": booking.id, "hotel_name": hotel_name, "missing_ids": missing}
                )
                return False
        return True

    async def sync_after_update(self, tenant_id: int, previous: BookingSnapshot, updated: Booking) -> bool:
        """
        Re-seat an edited booking's family only when the edit matters.

        Seating is recomputed when the family is not fully seated or a key
        field (program, package, gender, hotel selection, related persons)
        changed; cosmetic edits keep the settled room layout.

        Args:
            tenant_id: Owning tenant ID
            previous: Snapshot taken before the booking was edited
            updated: The edited, flushed booking

        Returns:
            True if the family was re-seated
        """
        fully_assigned = await self.is_fully_assigned(tenant_id, updated.trip_id, updated)
        changed = previous.changed_key_fields(updated)

        if fully_assigned and not changed:
            logger.info(
                "Room re-assignment skipped - fully assigned and no key fields changed",
                extra={"tenant_id": tenant_id, "booking_id": updated.id}
            )
            return False

        reasons = []
        if not fully_assigned:
            reasons.append("not fully assigned")
        if changed:
            reasons.append(f"key fields changed: {', '.join(changed)}")
        logger.info(
            "Room re-assignment triggered",
            extra={"tenant_id": tenant_id, "booking_id": updated.id, "reason": " and ".join(reasons)}
        )

        await self.remove_from_program(tenant_id, previous.trip_id, previous.id)
        await self.assign(tenant_id, updated)
        return True

    async def sync_booking(self, tenant_id: int, booking: Booking) -> list[Placement]:
        """Seat a confirmed booking's family; unseat a booking in any other status."""
        if booking.status == BookingStatus.CONFIRMED:
            return await self.assign(tenant_id, booking)

        cleared = await self._clear_ids_in_program(tenant_id, booking.trip_id, {booking.id})
        metrics_collector.record_slots_cleared("ineligible", cleared)
        logger.info(
            "Booking not eligible for seating - removed from rooms",
            extra={
                "tenant_id": tenant_id,
                "booking_id": booking.id,
                "status": booking.status,
                "slots_cleared": cleared
            }
        )
        return []

    async def rename_occupant(self, tenant_id: int, program_id: int, booking_id: int, client_name: str) -> int:
        """
        Propagate a traveler's new name into every seat they hold in the program.

        Returns:
            Number of occupant slots updated
        """
        hotel_names = await self.rooms.list_hotel_names(tenant_id, program_id)
        await self.rooms.lock_hotels(tenant_id, program_id, hotel_names)
        updated = 0
        for hotel_name in hotel_names:
            record, rooms = await self.rooms.get_rooms_for_hotel(tenant_id, program_id, hotel_name)
            changed = 0
            for room in rooms:
                for occupant in room.seated:
                    if occupant.id == booking_id and occupant.client_name != client_name:
                        occupant.client_name = client_name
                        changed += 1
            if changed:
                await self.rooms.save_rooms(tenant_id, program_id, hotel_name, rooms, record)
                updated += changed

        logger.info(
            "Occupant name updated in rooms",
            extra={"tenant_id": tenant_id, "program_id": program_id, "booking_id": booking_id, "slots_updated": updated}
        )
        return updated

    async def get_rooms(self, tenant_id: int, program_id: int, hotel_name: str) -> tuple[list[Room], bool]:
        """
        A hotel's rooms for display.

        Returns:
            The stored rooms and True, or an unsaved template with one empty
            ``"<type> 1"`` room per room type priced for the hotel and False
        """
        record, rooms = await self.rooms.get_rooms_for_hotel(tenant_id, program_id, hotel_name, for_update=False)
        if record is not None:
            return rooms, True

        program = await self.program_service.get_program(tenant_id, program_id)
        if program is None:
            return [], False

        template = [
            Room(name=f"{room_type} 1", room_type=room_type, capacity=capacity)
            for room_type, capacity in room_types_for_hotel(program.config, hotel_name).items()
        ]
        return template, False

    async def save_rooms(self, tenant_id: int, program_id: int, hotel_name: str, rooms: list[Room]) -> list[Room]:
        """
        Replace a hotel's rooms after a manual edit.

        Raises:
            RoomLayoutError: If the rooms break the capacity or gender rules or
                seat a traveler twice
        """
        family_rooms = await self._single_family_rooms(tenant_id, room_allocator.mixed_gender_rooms(rooms))
        violations = room_allocator.layout_violations(rooms, family_rooms)
        if violations:
            logger.warning(
                "Manual room layout rejected",
                extra={"tenant_id": tenant_id, "program_id": program_id, "hotel_name": hotel_name, "violations": violations}
            )
            raise RoomLayoutError(hotel_name, violations)

        record, _ = await self.rooms.get_rooms_for_hotel(tenant_id, program_id, hotel_name)
        saved = await self.rooms.save_rooms(tenant_id, program_id, hotel_name, rooms, record)

        logger.info(
            "Rooms saved manually",
            extra={"tenant_id": tenant_id, "program_id": program_id, "hotel_name": hotel_name, "rooms": len(saved)}
        )
        return saved

    async def search_unassigned_occupants(
        self,
        tenant_id: int,
        program_id: int,
        hotel_name: str,
        search_term: str = "",
    ) -> list[Booking]:
        """Travelers of the program not seated in the hotel, matching ``search_term``."""
        seated = await self.rooms.get_assigned_occupant_ids(tenant_id, program_id, hotel_name)

        stmt = select(Booking).where(Booking.user_id == tenant_id, Booking.trip_id == program_id)
        if seated:
            stmt = stmt.where(Booking.id.not_in(seated))
        if search_term.strip():
            stmt = stmt.where(Booking.client_name.ilike(f"%{search_term.strip()}%"))
        stmt = stmt.order_by(Booking.client_name, Booking.id).limit(settings.occupant_search_limit)

        result = await self.db.execute(stmt)
        return list(result.scalars())

    async def _single_family_rooms(self, tenant_id: int, rooms: list[Room]) -> list[str]:
        """Names of the given rooms whose occupants all belong to one family."""
        names = []
        for room in rooms:
            family = await self.family_service.resolve_family(tenant_id, room.seated[0].id)
            family_ids = {member.id for member in family}
            if all(occupant.id in family_ids for occupant in room.seated):
                names.append(room.name)
        return names

    async def _remove_from_city(
        self,
        tenant_id: int,
        program: Program,
        config: ProgramConfig,
        city: str,
        occupant_ids: list[int],
    ) -> int:
        hotel_names = hotels_for_city(config, city)
        await self.rooms.lock_hotels(tenant_id, program.id, hotel_names)
        cleared = 0
        for hotel_name in hotel_names:
            cleared += await self._clear_ids_in_hotel(tenant_id, program.id, hotel_name, occupant_ids)
        self._log_city_removal(tenant_id, program.id, city, occupant_ids, cleared)
        return cleared

    @staticmethod
    def _log_city_removal(tenant_id: int, program_id: int, city: str, occupant_ids: list[int], cleared: int) -> None:
        metrics_collector.record_slots_cleared("city", cleared)
        if cleared:
            logger.info(
                "Occupants removed from city rooms",
                extra={
                    "tenant_id": tenant_id,
                    "program_id": program_id,
                    "city": city,
                    "occupant_ids": occupant_ids,
                    "slots_cleared": cleared
                }
            )

    async def _clear_ids_in_program(self, tenant_id: int, program_id: int, occupant_ids: set[int]) -> int:
        hotel_names = await self.rooms.list_hotel_names(tenant_id, program_id)
        await self.rooms.lock_hotels(tenant_id, program_id, hotel_names)
        cleared = 0
        for hotel_name in hotel_names:
            cleared += await self._clear_ids_in_hotel(tenant_id, program_id, hotel_name, occupant_ids)
        return cleared

    async def _clear_ids_in_hotel(
        self,
        tenant_id: int,
        program_id: int,
        hotel_name: str,
        occupant_ids: Iterable[int],
    ) -> int:
        record, rooms = await self.rooms.get_rooms_for_hotel(tenant_id, program_id, hotel_name)
        if record is None:
            return 0
        cleared = room_allocator.clear_occupants(rooms, occupant_ids)
        if cleared:
            await self.rooms.save_rooms(tenant_id, program_id, hotel_name, rooms, record)
        return cleared

    async def _reseat_in_hotel(
        self,
        tenant_id: int,
        program_id: int,
        config: ProgramConfig,
        hotel_name: str,
        member_ids: list[int],
        groups: dict[str, list[Booking]],
    ) -> tuple[int, list[Placement]]:
        """
        Clear the family from one hotel and seat its groups there, saving once.

        Working on a single room list keeps a room the family just vacated in
        place, so a repeated pass reproduces the same layout.
        """
        record, rooms = await self.rooms.get_rooms_for_hotel(tenant_id, program_id, hotel_name)
        cleared = room_allocator.clear_occupants(rooms, member_ids)

        placements: list[Placement] = []
        for room_type, group in groups.items():
            capacity = capacity_for(config, room_type, settings.default_room_capacity)
            for placement in room_allocator.place_group(
                rooms, room_type, [_occupant_for(member) for member in group], capacity
            ):
                placement.hotel_name = hotel_name
                placements.append(placement)

        if cleared or placements:
            await self.rooms.save_rooms(tenant_id, program_id, hotel_name, rooms, record)
        return cleared, placements

    @staticmethod
    def _cities_in_order(members: list[Booking]) -> list[str]:
        cities: list[str] = []
        for member in members:
            for city in member.hotel_selection.distinct_cities():
                if city not in cities:
                    cities.append(city)
        return cities

    @staticmethod
    def _group_by_hotel_and_room_type(members: list[Booking], city: str) -> dict[tuple[str, str], list[Booking]]:
        groups: dict[tuple[str, str], list[Booking]] = {}
        for member in members:
            for choice in member.hotel_selection.choices_for_city(city):
                groups.setdefault(choice, []).append(member)
        return groups


def snapshot(booking: Any) -> BookingSnapshot:
    """Capture the seating-relevant fields of a booking before editing it."""
    return BookingSnapshot.model_validate(booking)
