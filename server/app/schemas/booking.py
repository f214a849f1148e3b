"""Booking-related Pydantic schemas."""

from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field


class SelectedHotel(BaseModel):
    """
    A traveler's itinerary choices as parallel arrays indexed by city position.

    ``hotelNames[i]`` and ``roomTypes[i]`` are the choices for ``cities[i]``;
    blanks mean no hotel was chosen for that stop.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    cities: list[str | None] = Field(default_factory=list)
    hotel_names: list[str | None] = Field(default_factory=list, alias="hotelNames")
    room_types: list[str | None] = Field(default_factory=list, alias="roomTypes")

    def distinct_cities(self) -> list[str]:
        """Cities in itinerary order, without repeats or blanks."""
        seen: list[str] = []
        for city in self.cities:
            if city and city not in seen:
                seen.append(city)
        return seen

    def choices_for_city(self, city: str) -> list[tuple[str, str]]:
        """
        (hotel name, room type) pairs chosen for the visits to ``city``.

        A hotel booked on more than one visit keeps the room type of its first
        visit, so a traveler holds one seat per hotel.
        """
        choices: list[tuple[str, str]] = []
        for index, stop in enumerate(self.cities):
            if stop != city:
                continue
            hotel_name = self.hotel_names[index] if index < len(self.hotel_names) else None
            room_type = self.room_types[index] if index < len(self.room_types) else None
            if hotel_name and room_type and all(hotel_name != chosen for chosen, _ in choices):
                choices.append((hotel_name, room_type))
        return choices

    def required_hotels(self) -> list[str]:
        """Non-empty hotel names in itinerary order, without repeats."""
        hotels: list[str] = []
        for hotel_name in self.hotel_names:
            if hotel_name and hotel_name not in hotels:
                hotels.append(hotel_name)
        return hotels


class RelatedPerson(BaseModel):
    """Pointer from a family leader to one of its members."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int = Field(..., alias="ID", description="Booking ID of the family member")
    client_name: str | None = Field(None, alias="clientName")


class BookingSnapshot(BaseModel):
    """
    The fields of a booking that decide where its traveler sleeps.

    Take one before mutating a booking so the update flow can tell whether
    the seating has to be recomputed.
    """

    model_config = ConfigDict(from_attributes=True)

    KEY_FIELDS: ClassVar[tuple[str, ...]] = (
        "trip_id", "package_id", "gender", "selected_hotel", "related_persons"
    )

    id: int
    trip_id: int
    package_id: str | None = None
    gender: str | None = None
    status: str | None = None
    selected_hotel: dict[str, Any] = Field(default_factory=dict)
    related_persons: list[dict[str, Any]] = Field(default_factory=list)

    def changed_key_fields(self, other: Any) -> list[str]:
        """Names of the seating-relevant fields that differ from ``other``."""
        return [
            field for field in self.KEY_FIELDS
            if _blank_to_none(getattr(self, field)) != _blank_to_none(getattr(other, field, None))
        ]


def _blank_to_none(value: Any) -> Any:
    return value if value else None
