from dataclasses import asdict
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from roombook.booking.availability import check_availability
from roombook.db import get_db
from roombook.models.room import Room
from roombook.schemas.availability import AvailabilityRequest, AvailabilityResponse
from roombook.utils.auth import get_current_user
from roombook.utils.datetime_helpers import ensure_aware
import logging

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/availability",
    tags=["availability"],
)


@router.post(
    "/check",
    response_model=AvailabilityResponse,
    summary="Check room availability",
    description="Check whether a time slot can be booked in a room without writing anything.",
)
def check_room_availability(
    request: AvailabilityRequest,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    """
    Check whether a time slot can be booked.

    - **room_id**: Room to check.
    - **start_time** / **end_time**: Requested interval.
    - **tags**: Tags of the prospective reservation (Big Event tags change the rules).
    - **exclude_reservation_id**: Reservation being edited, ignored by the check.
    """
    room = db.query(Room).filter(Room.id == request.room_id).first()
    if not room:
        logger.error(f"Room not found: {request.room_id}")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")

    result = check_availability(
        db,
        ensure_aware(request.start_time),
        ensure_aware(request.end_time),
        room.id,
        request.tags,
        exclude_reservation_id=request.exclude_reservation_id,
    )
    logger.debug(f"Availability for room {room.id}: {result.available} ({result.code})")
    return asdict(result)
