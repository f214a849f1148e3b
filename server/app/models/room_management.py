"""Room management model definition."""

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base, JSONDocument

if TYPE_CHECKING:
    from .program import Program


class RoomManagement(Base):
    """
    Room list for one hotel within one program of one tenant.

    A row only exists while at least one occupant slot in it is filled.
    ``version`` is bumped on every write so a lost update raises instead of
    silently overwriting another transaction's seating.
    """

    __tablename__ = "room_managements"

    # Primary key
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Natural key
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    program_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("programs.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    hotel_name: Mapped[str] = mapped_column(String(255), nullable=False)

    # [{name, type, capacity, occupants: [null | {id, clientName, gender}]}]
    rooms: Mapped[list[dict[str, Any]]] = mapped_column(JSONDocument, nullable=False, default=list)

    # Optimistic concurrency token
    version: Mapped[int] = mapped_column(Integer, nullable=False)

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

    __table_args__ = (
        UniqueConstraint("user_id", "program_id", "hotel_name", name="uq_room_management_hotel"),
    )

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    program: Mapped["Program"] = relationship("Program", back_populates="room_managements")

    def __repr__(self) -> str:
        return (
            f"<RoomManagement(id={self.id}, program_id={self.program_id}, "
            f"hotel_name='{self.hotel_name}', rooms={len(self.rooms or [])}, version={self.version})>"
        )
