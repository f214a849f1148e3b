"""Room and occupant Pydantic schemas."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Occupant(BaseModel):
    """A traveler seated in one slot of a room."""

    model_config = ConfigDict(populate_by_name=True)

    id: int = Field(..., description="Booking ID of the traveler")
    client_name: str | None = Field(None, alias="clientName", description="Display name")
    gender: str | None = Field(None, description="Traveler gender")


class Room(BaseModel):
    """
    A physical room with a fixed number of occupant slots.

    ``occupants`` always has ``capacity`` entries once validated; lists stored
    in compacted form (empty slots stripped) are padded back with ``None``.
    """

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1, description="Room label, e.g. 'Double 2'")
    room_type: str = Field(..., alias="type", min_length=1, description="Room type name")
    capacity: int = Field(..., ge=1, description="Number of occupant slots")
    occupants: list[Occupant | None] = Field(default_factory=list)

    @model_validator(mode="after")
    def _normalize_slots(self) -> "Room":
        if len(self.occupants) < self.capacity:
            self.occupants.extend([None] * (self.capacity - len(self.occupants)))
        elif len(self.occupants) > self.capacity:
            # Surplus empty slots go; surplus travelers stay visible to validation
            seated = [o for o in self.occupants if o is not None]
            self.occupants = seated + [None] * max(self.capacity - len(seated), 0)
        return self

    @property
    def seated(self) -> list[Occupant]:
        return [o for o in self.occupants if o is not None]

    @property
    def occupant_count(self) -> int:
        return len(self.seated)

    @property
    def is_empty(self) -> bool:
        return self.occupant_count == 0

    @property
    def free_slots(self) -> int:
        return max(self.capacity - self.occupant_count, 0)

    @property
    def gender(self) -> str | None:
        """Gender of the first seated occupant, which every other occupant must share."""
        seated = self.seated
        return seated[0].gender if seated else None

    def seat(self, occupant: Occupant) -> int:
        """Put ``occupant`` into the first empty slot and return the slot index."""
        for index, slot in enumerate(self.occupants):
            if slot is None:
                self.occupants[index] = occupant
                return index
        raise ValueError(f"Room '{self.name}' has no free slot")

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class PlacementRule(str, Enum):
    """How an occupant ended up in their room."""
    FAMILY_FIT = "family_fit"
    SHARED_ROOM = "shared_room"
    EMPTY_ROOM = "empty_room"
    NEW_ROOM = "new_room"


class Placement(BaseModel):
    """One occupant seated by an allocation pass."""

    occupant_id: int
    hotel_name: str | None = None
    room_name: str
    room_type: str
    rule: PlacementRule


class RoomScope(BaseModel):
    """Identifies one hotel's room list."""

    tenant_id: int = Field(..., ge=1, description="Owning tenant (agency admin) ID")
    program_id: int = Field(..., ge=1, description="Program ID")
    hotel_name: str = Field(..., min_length=1, max_length=255, description="Hotel name")


class GetRoomsRequest(RoomScope):
    """Request schema for reading a hotel's rooms."""


class SaveRoomsRequest(RoomScope):
    """Request schema for replacing a hotel's rooms after a manual edit."""

    rooms: list[Room] = Field(default_factory=list, description="Complete room list for the hotel")


class SearchUnassignedRequest(RoomScope):
    """Request schema for searching travelers not yet seated in a hotel."""

    search_term: str = Field("", max_length=255, description="Case-insensitive name fragment")


class RoomsResponse(BaseModel):
    """Response schema for a hotel's rooms."""

    hotel_name: str
    persisted: bool = Field(..., description="False when the rooms are an unsaved template")
    rooms: list[Room]


class UnassignedOccupant(BaseModel):
    """Response item for the unassigned occupant search."""

    id: int
    client_name: str
    gender: str | None = None


class BookingReference(BaseModel):
    """Request schema addressing one booking of a tenant."""

    tenant_id: int = Field(..., ge=1, description="Owning tenant (agency admin) ID")
    booking_id: int = Field(..., ge=1, description="Booking ID")


class FamilyMember(BaseModel):
    """Response item describing one member of a family group."""

    id: int
    client_name: str
    gender: str | None = None
    is_leader: bool = False


class FamilyResponse(BaseModel):
    """Response schema for a resolved family group."""

    booking_id: int
    leader_id: int | None = None
    members: list[FamilyMember] = Field(default_factory=list)


class AssignmentResponse(BaseModel):
    """Response schema for an allocation pass."""

    booking_id: int
    placements: list[Placement] = Field(default_factory=list)


class AssignmentStatusResponse(BaseModel):
    """Response schema for the completeness check."""

    booking_id: int
    program_id: int | None = None
    fully_assigned: bool
