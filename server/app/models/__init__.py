"""Models module exporting all database models."""

from .booking import Booking, BookingStatus
from .program import Program
from .room_management import RoomManagement

__all__ = [
    # Program entity
    "Program",

    # Booking entities
    "Booking",
    "BookingStatus",

    # Room entity
    "RoomManagement",
]
