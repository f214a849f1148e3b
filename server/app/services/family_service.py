"""Family service: resolves the family group of any traveler booking."""

import logging

from sqlalchemy import select, type_coerce
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import is_postgresql
from ..models.booking import Booking

logger = logging.getLogger(__name__)


class FamilyService:
    """
    Service for family-group lookups.

    Only the leader stores the family (``related_persons``); a member is tied
    to its leader by reverse lookup over the bookings of the same program.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_booking(self, tenant_id: int, booking_id: int) -> Booking | None:
        """Get a tenant's booking by ID."""
        stmt = select(Booking).where(Booking.id == booking_id, Booking.user_id == tenant_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def find_leader(self, tenant_id: int, booking: Booking) -> Booking:
        """
        Return the leader of the family ``booking`` belongs to.

        A booking with related persons is its own leader. Otherwise the first
        booking of the same program listing it becomes the leader; with none,
        the booking leads a family of one.
        """
        if booking.is_family_leader:
            return booking

        referencing = await self._find_referencing_bookings(tenant_id, booking.trip_id, booking.id)
        if referencing:
            if len(referencing) > 1:
                logger.warning(
                    "Booking listed by several family leaders, using the first",
                    extra={
                        "booking_id": booking.id,
                        "leader_ids": [leader.id for leader in referencing]
                    }
                )
            return referencing[0]
        return booking

    async def resolve_family(self, tenant_id: int, booking_id: int) -> list[Booking]:
        """
        Resolve the full family of any member.

        Args:
            tenant_id: Owning tenant ID
            booking_id: Any booking of the family

        Returns:
            Leader first, then members in the leader's list order. Empty when
            the booking does not exist for the tenant.
        """
        booking = await self.get_booking(tenant_id, booking_id)
        if booking is None:
            logger.warning(
                "Family resolution skipped - booking not found",
                extra={"tenant_id": tenant_id, "booking_id": booking_id}
            )
            return []

        leader = await self.find_leader(tenant_id, booking)

        member_ids = [leader.id]
        for person in leader.related_person_entries:
            if person.id not in member_ids:
                member_ids.append(person.id)

        stmt = select(Booking).where(Booking.id.in_(member_ids), Booking.user_id == tenant_id)
        result = await self.db.execute(stmt)
        by_id = {member.id: member for member in result.scalars()}

        missing = [member_id for member_id in member_ids if member_id not in by_id]
        if missing:
            logger.warning(
                "Family leader lists unknown bookings",
                extra={"leader_id": leader.id, "missing_ids": missing}
            )

        return [by_id[member_id] for member_id in member_ids if member_id in by_id]

    async def _find_referencing_bookings(self, tenant_id: int, trip_id: int, booking_id: int) -> list[Booking]:
        """Bookings of the program whose related persons contain ``booking_id``, oldest first."""
        stmt = (
            select(Booking)
            .where(
                Booking.user_id == tenant_id,
                Booking.trip_id == trip_id,
                Booking.id != booking_id,
            )
            .order_by(Booking.id)
        )

        if is_postgresql(self.db):
            stmt = stmt.where(
                type_coerce(Booking.related_persons, JSONB).contains([{"ID": booking_id}])
            )
            result = await self.db.execute(stmt)
            return list(result.scalars())

        # Without JSONB containment, scan the program's bookings
        result = await self.db.execute(stmt)
        return [
            candidate for candidate in result.scalars()
            if any(person.id == booking_id for person in candidate.related_person_entries)
        ]
