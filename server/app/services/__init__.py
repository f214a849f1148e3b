"""Service layer package."""

from .family_service import FamilyService
from .program_service import ProgramService
from .room_assignment_service import RoomAssignmentService
from .room_repository import RoomRepository

__all__ = [
    "FamilyService",
    "ProgramService",
    "RoomAssignmentService",
    "RoomRepository",
]
