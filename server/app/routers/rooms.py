"""Rooms router for seating and room management operations."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.exceptions import NotFoundError, ProblemDetailsException
from ..models.booking import Booking
from ..schemas.common import Problem
from ..schemas.room import (
    AssignmentResponse,
    AssignmentStatusResponse,
    BookingReference,
    FamilyMember,
    FamilyResponse,
    GetRoomsRequest,
    RoomsResponse,
    SaveRoomsRequest,
    SearchUnassignedRequest,
    UnassignedOccupant,
)
from ..services.room_assignment_service import RoomAssignmentService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/v1/rooms",
    tags=["rooms"],
    responses={
        400: {"model": Problem, "description": "Invalid room layout"},
        404: {"model": Problem, "description": "Booking not found"},
        409: {"model": Problem, "description": "Rooms changed by a concurrent transaction"},
    },
)

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)


async def _get_booking_or_404(service: RoomAssignmentService, request: BookingReference) -> Booking:
    booking = await service.family_service.get_booking(request.tenant_id, request.booking_id)
    if booking is None:
        raise NotFoundError(resource_type="booking", resource_id=str(request.booking_id))
    return booking


@router.post("/get", response_model=RoomsResponse)
async def get_rooms(
    request: GetRoomsRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """
    Get a hotel's rooms.

    Hotels without seated travelers return an unsaved template built from the
    program's pricing.
    """
    service = RoomAssignmentService(db)

    try:
        rooms, persisted = await service.get_rooms(request.tenant_id, request.program_id, request.hotel_name)
        response_data = RoomsResponse(hotel_name=request.hotel_name, persisted=persisted, rooms=rooms)

        return JSONResponse(
            status_code=200,
            content=response_data.model_dump(mode="json", by_alias=True)
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in room retrieval",
            extra={
                "program_id": request.program_id,
                "hotel_name": request.hotel_name,
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/save", response_model=RoomsResponse)
async def save_rooms(
    request: SaveRoomsRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """
    Replace a hotel's rooms after a manual edit.

    Rooms left without travelers are dropped.
    """
    service = RoomAssignmentService(db)

    try:
        rooms = await service.save_rooms(
            request.tenant_id, request.program_id, request.hotel_name, request.rooms
        )
        await db.commit()

        response_data = RoomsResponse(hotel_name=request.hotel_name, persisted=bool(rooms), rooms=rooms)

        logger.info(
            "Rooms saved successfully",
            extra={
                "program_id": request.program_id,
                "hotel_name": request.hotel_name,
                "rooms": len(rooms)
            }
        )

        return JSONResponse(
            status_code=200,
            content=response_data.model_dump(mode="json", by_alias=True)
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in room save",
            extra={
                "program_id": request.program_id,
                "hotel_name": request.hotel_name,
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/search-unassigned", response_model=list[UnassignedOccupant])
async def search_unassigned(
    request: SearchUnassignedRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """Search the program's travelers not yet seated in the hotel."""
    service = RoomAssignmentService(db)

    try:
        bookings = await service.search_unassigned_occupants(
            request.tenant_id, request.program_id, request.hotel_name, request.search_term
        )
        response_data = [
            UnassignedOccupant(id=booking.id, client_name=booking.client_name, gender=booking.gender).model_dump()
            for booking in bookings
        ]

        return JSONResponse(status_code=200, content=response_data)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in unassigned occupant search",
            extra={
                "program_id": request.program_id,
                "hotel_name": request.hotel_name,
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/family", response_model=FamilyResponse)
async def get_family(
    request: BookingReference,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """Resolve the family group of any member booking."""
    service = RoomAssignmentService(db)

    try:
        family = await service.resolve_family(request.tenant_id, request.booking_id)
        if not family:
            raise NotFoundError(resource_type="booking", resource_id=str(request.booking_id))

        leader = family[0]
        response_data = FamilyResponse(
            booking_id=request.booking_id,
            leader_id=leader.id,
            members=[
                FamilyMember(
                    id=member.id,
                    client_name=member.client_name,
                    gender=member.gender,
                    is_leader=member.id == leader.id
                )
                for member in family
            ]
        )

        return JSONResponse(
            status_code=200,
            content=response_data.model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in family resolution",
            extra={
                "booking_id": request.booking_id,
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/assign", response_model=AssignmentResponse)
async def assign_rooms(
    request: BookingReference,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """
    Seat the booking's whole family in every city of its itinerary.

    Safe to repeat: an unchanged family ends up in the same rooms.
    """
    service = RoomAssignmentService(db)

    try:
        booking = await _get_booking_or_404(service, request)
        placements = await service.assign(request.tenant_id, booking)
        await db.commit()

        response_data = AssignmentResponse(booking_id=request.booking_id, placements=placements)

        logger.info(
            "Rooms assigned successfully",
            extra={
                "booking_id": request.booking_id,
                "placements": len(placements)
            }
        )

        return JSONResponse(
            status_code=200,
            content=response_data.model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in room assignment",
            extra={
                "booking_id": request.booking_id,
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/status", response_model=AssignmentStatusResponse)
async def assignment_status(
    request: BookingReference,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """Check whether the booking's family is seated in every hotel it selected."""
    service = RoomAssignmentService(db)

    try:
        booking = await _get_booking_or_404(service, request)
        fully_assigned = await service.is_fully_assigned(request.tenant_id, booking.trip_id, booking)

        response_data = AssignmentStatusResponse(
            booking_id=booking.id,
            program_id=booking.trip_id,
            fully_assigned=fully_assigned
        )

        return JSONResponse(
            status_code=200,
            content=response_data.model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in assignment status check",
            extra={
                "booking_id": request.booking_id,
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e
