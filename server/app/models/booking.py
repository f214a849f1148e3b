"""Booking (traveler record) model definition."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from sqlalchemy import ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base, JSONDocument
from ..schemas.booking import RelatedPerson, SelectedHotel

if TYPE_CHECKING:
    from .program import Program


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    CONFIRMED = "confirmed"
    PENDING_APPROVAL = "pending_approval"
    REJECTED = "rejected"


class Booking(Base):
    """
    Booking entity: one traveler within a program.

    Only a family leader carries ``related_persons``; members are found by
    reverse lookup on the leader's list.
    """

    __tablename__ = "bookings"

    # Primary key, unique per tenant
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Owning tenant (agency admin)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    # Program this traveler is booked on
    trip_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("programs.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Traveler details
    client_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    gender: Mapped[str | None] = mapped_column(String(16), nullable=True)
    package_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[BookingStatus] = mapped_column(
        String(32),
        nullable=False,
        default=BookingStatus.CONFIRMED,
        index=True
    )

    # {cities: [...], hotelNames: [...], roomTypes: [...]} indexed by city position
    selected_hotel: Mapped[dict[str, Any]] = mapped_column(JSONDocument, nullable=False, default=dict)

    # [{ID, clientName}, ...] present on the family leader only
    related_persons: Mapped[list[dict[str, Any]]] = mapped_column(JSONDocument, nullable=False, default=list)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        server_onupdate=func.now()
    )

    # Relationships
    program: Mapped["Program"] = relationship("Program", back_populates="bookings")

    @property
    def hotel_selection(self) -> SelectedHotel:
        """Typed view over the selected hotel document."""
        return SelectedHotel.model_validate(self.selected_hotel or {})

    @property
    def related_person_entries(self) -> list[RelatedPerson]:
        """Typed view over the related persons list, skipping malformed entries."""
        entries = []
        for person in self.related_persons or []:
            if isinstance(person, dict) and person.get("ID") is not None:
                entries.append(RelatedPerson.model_validate(person))
        return entries

    @property
    def is_family_leader(self) -> bool:
        return bool(self.related_person_entries)

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, trip_id={self.trip_id}, "
            f"client_name='{self.client_name}', status={self.status})>"
        )
