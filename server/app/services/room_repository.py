"""Room repository: reads and writes the per-hotel room lists of a program."""

import logging
from collections.abc import Iterable

from sqlalchemy import select, text
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from ..core.config import settings
from ..core.database import is_postgresql
from ..core.exceptions import ConcurrentRoomUpdateError
from ..core.observability import metrics_collector
from ..models.room_management import RoomManagement
from ..schemas.room import Room
from .room_allocator import assigned_ids, occupied_rooms

logger = logging.getLogger(__name__)

# PostgreSQL deadlock_detected and serialization_failure
LOCK_CONFLICT_SQLSTATES = frozenset({"40P01", "40001"})


class RoomRepository:
    """
    Data access for ``room_managements``.

    Never commits: every write is flushed into the caller's transaction so
    seating changes land or roll back together with the booking change that
    triggered them.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def lock_hotel(self, tenant_id: int, program_id: int, hotel_name: str) -> None:
        """
        Serialize edits to one hotel's rooms until the transaction ends.

        Uses a PostgreSQL transaction-scoped advisory lock so two allocations
        into the same hotel cannot both read the pre-change room list, even
        when the row does not exist yet. No-op on other databases.
        """
        if not settings.room_locking_enabled or not is_postgresql(self.db):
            return

        try:
            await self.db.execute(
                text("SELECT pg_advisory_xact_lock(hashtext(:lock_key))"),
                {"lock_key": f"room_managements:{tenant_id}:{program_id}:{hotel_name}"}
            )
        except DBAPIError as e:
            if not is_lock_conflict(e):
                raise
            self._log_lost_write(tenant_id, program_id, hotel_name, e)
            raise ConcurrentRoomUpdateError(tenant_id, program_id, hotel_name) from e

        logger.debug(
            "Acquired advisory lock for hotel rooms",
            extra={"tenant_id": tenant_id, "program_id": program_id, "hotel_name": hotel_name}
        )

    async def lock_hotels(self, tenant_id: int, program_id: int, hotel_names: Iterable[str]) -> None:
        """
        Lock several hotels up front, in name order.

        Every pass that edits more than one hotel takes its locks this way, so
        two passes visiting the same hotels in different itinerary orders
        never wait on each other in a cycle. Re-locking a held hotel is a no-op.
        """
        for hotel_name in sorted(set(hotel_names)):
            await self.lock_hotel(tenant_id, program_id, hotel_name)

    async def get_record(
        self,
        tenant_id: int,
        program_id: int,
        hotel_name: str,
        for_update: bool = False,
    ) -> RoomManagement | None:
        """Get the room management row for a hotel, optionally locking it."""
        stmt = select(RoomManagement).where(
            RoomManagement.user_id == tenant_id,
            RoomManagement.program_id == program_id,
            RoomManagement.hotel_name == hotel_name,
        )
        if not for_update:
            result = await self.db.execute(stmt)
            return result.scalar_one_or_none()

        stmt = stmt.with_for_update().execution_options(populate_existing=True)
        try:
            result = await self.db.execute(stmt)
        except DBAPIError as e:
            if not is_lock_conflict(e):
                raise
            self._log_lost_write(tenant_id, program_id, hotel_name, e)
            raise ConcurrentRoomUpdateError(tenant_id, program_id, hotel_name) from e
        return result.scalar_one_or_none()

    async def get_rooms_for_hotel(
        self,
        tenant_id: int,
        program_id: int,
        hotel_name: str,
        for_update: bool = True,
    ) -> tuple[RoomManagement | None, list[Room]]:
        """
        Load a hotel's rooms for editing.

        Args:
            tenant_id: Owning tenant ID
            program_id: Program ID
            hotel_name: Hotel name
            for_update: Lock the hotel and its row for the rest of the transaction

        Returns:
            The stored row (None when the hotel has no seated occupants) and its
            rooms with every room padded to its full slot count
        """
        if for_update:
            await self.lock_hotel(tenant_id, program_id, hotel_name)
        record = await self.get_record(tenant_id, program_id, hotel_name, for_update=for_update)
        if record is None:
            return None, []
        return record, parse_rooms(record.rooms)

    async def save_rooms(
        self,
        tenant_id: int,
        program_id: int,
        hotel_name: str,
        rooms: list[Room],
        record: RoomManagement | None = None,
    ) -> list[Room]:
        """
        Persist a hotel's rooms as an upsert-or-delete.

        Rooms with no seated occupant are dropped. If nothing is left the row
        is deleted; otherwise it is updated, or inserted when ``record`` is None.

        Args:
            tenant_id: Owning tenant ID
            program_id: Program ID
            hotel_name: Hotel name
            rooms: The hotel's full room list
            record: The row returned by ``get_rooms_for_hotel``, None if there was none

        Returns:
            The rooms that were kept

        Raises:
            ConcurrentRoomUpdateError: If another transaction changed the row first
        """
        kept = occupied_rooms(rooms)

        try:
            if not kept:
                if record is not None:
                    await self.db.delete(record)
                    await self.db.flush()
                    metrics_collector.record_room_record_deleted()
                    logger.info(
                        "Room management record deleted - no occupants left",
                        extra={"tenant_id": tenant_id, "program_id": program_id, "hotel_name": hotel_name}
                    )
                return []

            documents = [room.to_document() for room in kept]
            if record is None:
                record = RoomManagement(
                    user_id=tenant_id,
                    program_id=program_id,
                    hotel_name=hotel_name,
                    rooms=documents,
                )
                self.db.add(record)
            else:
                record.rooms = documents
            await self.db.flush()
        except (StaleDataError, DBAPIError) as e:
            if isinstance(e, DBAPIError) and not isinstance(e, IntegrityError) and not is_lock_conflict(e):
                raise
            self._log_lost_write(tenant_id, program_id, hotel_name, e)
            raise ConcurrentRoomUpdateError(tenant_id, program_id, hotel_name) from e

        logger.debug(
            "Room management record saved",
            extra={
                "tenant_id": tenant_id,
                "program_id": program_id,
                "hotel_name": hotel_name,
                "rooms": len(kept),
                "version": record.version
            }
        )
        return kept

    @staticmethod
    def _log_lost_write(tenant_id: int, program_id: int, hotel_name: str, error: Exception) -> None:
        logger.warning(
            "Room management write lost to a concurrent transaction",
            extra={
                "tenant_id": tenant_id,
                "program_id": program_id,
                "hotel_name": hotel_name,
                "error": str(error)
            }
        )

    async def list_hotel_names(self, tenant_id: int, program_id: int) -> list[str]:
        """Hotels of the program that currently have seated occupants."""
        stmt = (
            select(RoomManagement.hotel_name)
            .where(RoomManagement.user_id == tenant_id, RoomManagement.program_id == program_id)
            .order_by(RoomManagement.hotel_name)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars())

    async def get_all_for_program(self, tenant_id: int, program_id: int) -> list[RoomManagement]:
        stmt = (
            select(RoomManagement)
            .where(RoomManagement.user_id == tenant_id, RoomManagement.program_id == program_id)
            .order_by(RoomManagement.hotel_name)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars())

    async def get_assigned_occupant_ids(self, tenant_id: int, program_id: int, hotel_name: str) -> set[int]:
        """Booking IDs seated anywhere in the hotel."""
        record = await self.get_record(tenant_id, program_id, hotel_name)
        if record is None:
            return set()
        return assigned_ids(parse_rooms(record.rooms))

    async def are_bookings_assigned(self, tenant_id: int, program_id: int, booking_ids: Iterable[int]) -> bool:
        """True if any of ``booking_ids`` is seated in any hotel of the program."""
        wanted = set(booking_ids)
        if not wanted:
            return False
        for record in await self.get_all_for_program(tenant_id, program_id):
            if wanted & assigned_ids(parse_rooms(record.rooms)):
                return True
        return False


def parse_rooms(documents: list[dict] | None) -> list[Room]:
    return [Room.model_validate(document) for document in documents or []]


def is_lock_conflict(error: DBAPIError) -> bool:
    """True if the database aborted the statement to break a lock cycle or a serialization conflict."""
    sqlstate = getattr(error.orig, "sqlstate", None) or getattr(error.orig, "pgcode", None)
    return sqlstate in LOCK_CONFLICT_SQLSTATES
