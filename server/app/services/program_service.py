"""Program service: program lookups and configuration queries for the room engine."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..models.program import Program
from ..schemas.program import ProgramConfig

logger = logging.getLogger(__name__)


def capacity_for(config: ProgramConfig, room_type: str, default: int | None = None) -> int:
    """
    Occupant capacity configured for ``room_type``.

    Scans every package's price structures in order and returns the guest
    count of the first matching room type. Falls back to ``default`` (the
    configured default capacity when omitted) if no entry matches.
    """
    for package in config.packages:
        for price in package.prices:
            for room_type_price in price.room_types:
                if room_type_price.type == room_type and room_type_price.guests and room_type_price.guests > 0:
                    return room_type_price.guests

    fallback = default if default is not None else settings.default_room_capacity
    logger.debug(
        "Room type not found in program pricing, using default capacity",
        extra={"room_type": room_type, "capacity": fallback}
    )
    return fallback


def hotels_for_city(config: ProgramConfig, city: str) -> list[str]:
    """Hotel names offered for ``city`` by any package, in configuration order."""
    hotels: list[str] = []
    for package in config.packages:
        for hotel_name in package.hotels.get(city, []):
            if hotel_name and hotel_name not in hotels:
                hotels.append(hotel_name)
    return hotels


def room_types_for_hotel(config: ProgramConfig, hotel_name: str) -> dict[str, int]:
    """Room types priced for a hotel combination containing ``hotel_name``, with capacities."""
    room_types: dict[str, int] = {}
    for package in config.packages:
        for price in package.prices:
            if hotel_name not in price.hotel_names():
                continue
            for room_type_price in price.room_types:
                if room_type_price.type not in room_types:
                    room_types[room_type_price.type] = capacity_for(config, room_type_price.type)
    return room_types


class ProgramService:
    """Service for program lookups."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_program(self, tenant_id: int, program_id: int) -> Program | None:
        """
        Get a tenant's program by ID.

        Args:
            tenant_id: Owning tenant ID
            program_id: Program ID to search for

        Returns:
            Program if found, None otherwise
        """
        stmt = select(Program).where(Program.id == program_id, Program.user_id == tenant_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()
