"""Test configuration and fixtures."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.database import Base, get_db
from app.models import *  # noqa: F403 - Import all models
from app.models import Booking, BookingStatus, Program
from app.schemas.program import ProgramConfig

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TENANT_ID = 1

# Mecca offers two hotels, Medina one; Single is only priced with Sheraton
SAMPLE_PACKAGES = [
    {
        "name": "Standard",
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
    },
    {
        "name": "Comfort",
        "hotels": {"Mecca": ["Sheraton", "Hilton"], "Medina": ["Pullman"]},
        "prices": [
            {
                "hotelCombination": "Sheraton_Pullman",
                "roomTypes": [
                    {"type": "Single", "guests": 1},
                    {"type": "Double", "guests": 2},
                ],
            }
        ],
    },
]


def selection(*stops: tuple[str, str, str]) -> dict:
    """Build a selectedHotel document from (city, hotel, room type) stops."""
    return {
        "cities": [city for city, _, _ in stops],
        "hotelNames": [hotel for _, hotel, _ in stops],
        "roomTypes": [room_type for _, _, room_type in stops],
    }


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_session(test_engine):
    """Create a test database session."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with async_session() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def test_app(test_session):
    """Create the application with its database dependency bound to the test session."""
    from app.main import create_app

    app = create_app()

    # Override database dependency
    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db

    yield app

    # Clean up
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def tenant_id():
    """Tenant owning the sample data."""
    return TENANT_ID


@pytest_asyncio.fixture
async def program(test_session):
    """Sample program with Mecca and Medina hotels."""
    program = Program(user_id=TENANT_ID, name="Umrah October", packages=SAMPLE_PACKAGES)
    test_session.add(program)
    await test_session.flush()
    return program


@pytest_asyncio.fixture
async def make_booking(test_session, program):
    """Factory for bookings on the sample program, flushed so they get IDs."""

    async def _make_booking(
        client_name: str,
        gender: str | None = "male",
        selected_hotel: dict | None = None,
        related: list[Booking] | None = None,
        status: BookingStatus = BookingStatus.CONFIRMED,
        trip_id: int | None = None,
        package_id: str | None = "Standard",
    ) -> Booking:
        booking = Booking(
            user_id=TENANT_ID,
            trip_id=trip_id or program.id,
            client_name=client_name,
            gender=gender,
            package_id=package_id,
            status=status,
            selected_hotel=selected_hotel if selected_hotel is not None else selection(("Mecca", "Hilton", "Double")),
            related_persons=[{"ID": member.id, "clientName": member.client_name} for member in related or []],
        )
        test_session.add(booking)
        await test_session.flush()
        return booking

    return _make_booking


@pytest.fixture
def itinerary():
    """The ``selection`` helper, for tests building their own hotel choices."""
    return selection


@pytest.fixture
def program_config():
    """Typed configuration of the sample program, without a database."""
    return ProgramConfig.model_validate({"packages": SAMPLE_PACKAGES})
