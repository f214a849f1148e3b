"""Program model definition."""

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base, JSONDocument
from ..schemas.program import ProgramConfig

if TYPE_CHECKING:
    from .booking import Booking
    from .room_management import RoomManagement


class Program(Base):
    """Program entity: a trip offering whose packages drive hotels and room types."""

    __tablename__ = "programs"

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Owning tenant (agency admin)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # packages[].hotels[city] -> [hotelName]
    # packages[].prices[].{hotelCombination, roomTypes[].{type, guests}}
    packages: Mapped[list[dict[str, Any]]] = mapped_column(JSONDocument, nullable=False, default=list)

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
    bookings: Mapped[list["Booking"]] = relationship(
        "Booking",
        back_populates="program",
        cascade="all, delete-orphan"
    )
    room_managements: Mapped[list["RoomManagement"]] = relationship(
        "RoomManagement",
        back_populates="program",
        cascade="all, delete-orphan"
    )

    @property
    def config(self) -> ProgramConfig:
        """Typed view over the packages document."""
        return ProgramConfig.model_validate({"packages": self.packages or []})

    def __repr__(self) -> str:
        return f"<Program(id={self.id}, user_id={self.user_id}, name='{self.name}')>"
