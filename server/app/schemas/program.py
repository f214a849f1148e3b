"""Program configuration Pydantic schemas.

These mirror the ``packages`` document stored on a program. Only the parts the
room engine reads are modelled; unknown keys are ignored.
"""

from pydantic import BaseModel, ConfigDict, Field


class RoomTypePrice(BaseModel):
    """A priced room type and how many guests it seats."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str = Field(..., description="Room type name, e.g. 'Double'")
    guests: int | None = Field(None, description="Occupant capacity of the room type")


class PackagePrice(BaseModel):
    """Price structure for one hotel combination of a package."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    hotel_combination: str = Field("", alias="hotelCombination", description="Hotel names joined with '_'")
    room_types: list[RoomTypePrice] = Field(default_factory=list, alias="roomTypes")

    def hotel_names(self) -> list[str]:
        return [name for name in self.hotel_combination.split("_") if name]


class ProgramPackage(BaseModel):
    """A package: the hotels offered per city and their prices."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field("", description="Package name")
    hotels: dict[str, list[str]] = Field(default_factory=dict, description="City to hotel names")
    prices: list[PackagePrice] = Field(default_factory=list)


class ProgramConfig(BaseModel):
    """Read-only program configuration consumed by the room engine."""

    model_config = ConfigDict(extra="ignore")

    packages: list[ProgramPackage] = Field(default_factory=list)
