#!/usr/bin/env python3
"""Setup script for the room allocation API."""

import asyncio
import logging
import sys
from pathlib import Path

# Add the server directory to the Python path
server_dir = Path(__file__).parent.parent / "server"
sys.path.insert(0, str(server_dir))

from alembic import command
from alembic.config import Config
from sqlalchemy import func, select

from app.core.database import async_session_factory, init_db
from app.models import Booking, BookingStatus, Program
from app.services.room_assignment_service import RoomAssignmentService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SAMPLE_TENANT_ID = 1

SAMPLE_PACKAGES = [
    {
        "name": "Umrah Standard",
        "hotels": {"Mecca": ["Hilton"], "Medina": ["Pullman"]},
        "prices": [
            {
                "hotelCombination": "Hilton_Pullman",
                "roomTypes": [
                    {"type": "Double", "guests": 2},
                    {"type": "Triple", "guests": 3},
                    {"type": "Quad", "guests": 4},
                ],
            }
        ],
    }
]


def _selection(room_type: str) -> dict:
    return {
        "cities": ["Mecca", "Medina"],
        "hotelNames": ["Hilton", "Pullman"],
        "roomTypes": [room_type, room_type],
    }


async def setup_database():
    """Setup the database with initial schema."""
    logger.info("Setting up database...")

    try:
        await init_db()
        logger.info("Database connection initialized")

        alembic_ini = server_dir / "db" / "alembic.ini"
        if alembic_ini.exists():
            alembic_cfg = Config(str(alembic_ini))
            alembic_cfg.set_main_option("script_location", str(server_dir / "db" / "alembic"))

            logger.info("Running database migrations...")
            command.upgrade(alembic_cfg, "head")
            logger.info("Database migrations completed")

        logger.info("Database setup completed successfully!")

    except Exception as e:
        logger.error(f"Database setup failed: {e}")
        raise


async def create_sample_data():
    """Create a sample program with a family and a solo traveler, then seat them."""
    logger.info("Creating sample data...")

    async with async_session_factory() as db:
        try:
            existing_programs = await db.execute(select(func.count()).select_from(Program))
            if existing_programs.scalar() > 0:
                logger.info("Sample data already exists, skipping...")
                return

            program = Program(user_id=SAMPLE_TENANT_ID, name="Umrah October", packages=SAMPLE_PACKAGES)
            db.add(program)
            await db.flush()

            member = Booking(
                user_id=SAMPLE_TENANT_ID,
                trip_id=program.id,
                client_name="Sara Idrissi",
                gender="female",
                package_id="Umrah Standard",
                status=BookingStatus.CONFIRMED,
                selected_hotel=_selection("Double"),
            )
            solo = Booking(
                user_id=SAMPLE_TENANT_ID,
                trip_id=program.id,
                client_name="Omar Benali",
                gender="male",
                package_id="Umrah Standard",
                status=BookingStatus.CONFIRMED,
                selected_hotel=_selection("Double"),
            )
            db.add_all([member, solo])
            await db.flush()

            leader = Booking(
                user_id=SAMPLE_TENANT_ID,
                trip_id=program.id,
                client_name="Amina Idrissi",
                gender="female",
                package_id="Umrah Standard",
                status=BookingStatus.CONFIRMED,
                selected_hotel=_selection("Double"),
                related_persons=[{"ID": member.id, "clientName": member.client_name}],
            )
            db.add(leader)
            await db.flush()

            service = RoomAssignmentService(db)
            await service.assign(SAMPLE_TENANT_ID, leader)
            await service.assign(SAMPLE_TENANT_ID, solo)

            await db.commit()
            logger.info("Sample data created successfully!")

        except Exception as e:
            await db.rollback()
            logger.error(f"Failed to create sample data: {e}")
            raise


async def main():
    """Main setup function."""
    logger.info("Starting room allocation API setup...")

    await setup_database()

    await create_sample_data()

    logger.info("Setup completed successfully!")
    logger.info("You can now start the API server with: cd server && uvicorn app.main:app --reload")


if __name__ == "__main__":
    asyncio.run(main())
