from dataclasses import asdict
from datetime import date, datetime, time, timedelta
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from roombook.booking.lifecycle import (
    CONFLICT,
    NOT_FOUND,
    PERMISSION,
    STORAGE,
    ReservationManager,
)
from roombook.db import get_db
from roombook.models.reservation import STATUS_PENDING, Reservation
from roombook.notifications import Notifier, get_notifier
from roombook.schemas.reservation import (
    ActionResponse,
    CalendarEntry,
    CreateReservationResponse,
    ReservationCreate,
    ReservationResponse,
    ReservationUpdate,
    StatusUpdate,
)
from roombook.utils.auth import get_current_user, require_admin
from roombook.utils.datetime_helpers import ensure_aware, get_timezone, get_today
import logging

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/reservations",
    tags=["reservations"],
)

_STATUS_CODES = {
    PERMISSION: status.HTTP_403_FORBIDDEN,
    NOT_FOUND: status.HTTP_404_NOT_FOUND,
    CONFLICT: status.HTTP_409_CONFLICT,
    STORAGE: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def get_manager(
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    current_user: dict = Depends(get_current_user),
) -> ReservationManager:
    return ReservationManager(db, notifier, current_user)


def _raise_for(result):
    if result.success:
        return
    status_code = _STATUS_CODES.get(result.error_kind, status.HTTP_400_BAD_REQUEST)
    raise HTTPException(status_code=status_code, detail=result.message)


@router.post(
    "/",
    response_model=CreateReservationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a reservation",
    description="Request a room. Admin bookings are approved immediately, others wait for approval.",
)
def create_reservation(
    reservation: ReservationCreate,
    manager: ReservationManager = Depends(get_manager),
):
    """
    Create a reservation, optionally recurring.

    - **room_id**, **title**, **start_time**, **end_time**: required.
    - **tags**: Big Event tags require every room to be free and lock them all.
    - **recurrence_pattern**: none, daily, weekly, biweekly or monthly.
    - **recurrence_end_type**: never, count or date.

    A Big Event clashing with existing bookings fails with 409 and the list of
    clashing reservations.
    """
    result = manager.create(reservation)
    if not result.success:
        status_code = _STATUS_CODES.get(result.error_kind, status.HTTP_400_BAD_REQUEST)
        detail = result.error
        if result.conflict_type:
            detail = {
                "error": result.error,
                "conflict_type": result.conflict_type,
                "conflicting_events": [
                    {
                        **asdict(event),
                        "start_time": event.start_time.isoformat(),
                        "end_time": event.end_time.isoformat(),
                    }
                    for event in result.conflicting_events
                ],
            }
        logger.error(f"Reservation not created: {result.error}")
        raise HTTPException(status_code=status_code, detail=detail)
    return {
        "success": True,
        "reservation_id": result.reservation_id,
        "status": result.status,
        "lockouts_created": result.lockouts_created,
    }


@router.get(
    "/",
    response_model=List[CalendarEntry],
    summary="Calendar view",
    description="Active reservations in a window, with recurring series expanded into occurrences.",
)
def get_calendar(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    room_id: Optional[int] = None,
    manager: ReservationManager = Depends(get_manager),
):
    """
    List what occupies the rooms between **start** and **end**
    (defaults: today and the 30 days after).
    """
    if start is None:
        start = datetime.combine(get_today(), time.min, tzinfo=get_timezone())
    start = ensure_aware(start)
    if end is None:
        end = start + timedelta(days=30)
    end = ensure_aware(end)
    if end <= start:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="end must be after start")

    entries = []
    for occupancy in manager.calendar(start, end, room_id=room_id):
        reservation = occupancy.reservation
        entries.append(
            {
                "ref": asdict(occupancy.ref),
                "reservation_id": reservation.id,
                "room_id": reservation.room_id,
                "title": reservation.title,
                "start_time": occupancy.start,
                "end_time": occupancy.end,
                "status": reservation.status,
                "tags": reservation.tags or [],
                "is_recurring": reservation.is_recurring,
                "recurrence_pattern": reservation.recurrence_pattern,
            }
        )
    logger.debug(f"Calendar {start} - {end}: {len(entries)} entries")
    return entries


@router.get("/pending", response_model=List[ReservationResponse], summary="Approval queue")
def get_pending_reservations(
    db: Session = Depends(get_db),
    current_user: dict = Depends(require_admin),
):
    """Pending reservations, oldest request first."""
    return (
        db.query(Reservation)
        .filter(Reservation.status == STATUS_PENDING)
        .order_by(Reservation.created_at)
        .all()
    )


@router.get("/mine", response_model=List[ReservationResponse], summary="My reservations")
def get_my_reservations(
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    """Reservations created by the caller, cancellation exceptions excluded."""
    return (
        db.query(Reservation)
        .filter(
            Reservation.user_id == current_user["id"],
            Reservation.parent_reservation_id.is_(None),
        )
        .order_by(Reservation.start_time)
        .all()
    )


@router.get("/{reservation_id}", response_model=ReservationResponse)
def get_reservation(reservation_id: int, db: Session = Depends(get_db)):
    """Retrieve a reservation by ID."""
    reservation = db.query(Reservation).filter(Reservation.id == reservation_id).first()
    if not reservation:
        logger.error(f"Reservation not found: {reservation_id}")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Reservation not found")
    return reservation


@router.put("/{reservation_id}", response_model=ActionResponse)
def update_reservation(
    reservation_id: int,
    changes: ReservationUpdate,
    manager: ReservationManager = Depends(get_manager),
):
    """
    Edit a reservation. The new slot is checked with the reservation itself
    excluded. Big Events cannot be edited.
    """
    result = manager.update(reservation_id, changes)
    _raise_for(result)
    return asdict(result)


@router.post("/{reservation_id}/status", response_model=ActionResponse)
def update_reservation_status(
    reservation_id: int,
    body: StatusUpdate,
    manager: ReservationManager = Depends(get_manager),
):
    """Approve or reject a reservation. Administrators only."""
    result = manager.update_status(reservation_id, body.status)
    _raise_for(result)
    return asdict(result)


@router.post("/{reservation_id}/cancel", response_model=ActionResponse)
def cancel_reservation(
    reservation_id: int,
    manager: ReservationManager = Depends(get_manager),
):
    """
    Cancel a reservation (a whole series for recurring ones).
    Big Event lockouts and combined-room bookings are cancelled with it.
    """
    result = manager.cancel(reservation_id)
    _raise_for(result)
    return asdict(result)


@router.post("/{reservation_id}/instances/{instance_date}/cancel", response_model=ActionResponse)
def cancel_recurring_instance(
    reservation_id: int,
    instance_date: date,
    manager: ReservationManager = Depends(get_manager),
):
    """Cancel one occurrence of a weekly recurring reservation."""
    result = manager.cancel_single_instance(reservation_id, instance_date.isoformat())
    _raise_for(result)
    return asdict(result)
