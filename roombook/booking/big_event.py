"""
Big Event room lockout.

A Big Event needs every room free around it. Once it is booked, every other
active room receives a placeholder reservation (tagged with the block tag)
covering the buffered interval, and those placeholders are cancelled again
when the Big Event is cancelled. This module is the only place that computes
the buffer and touches placeholder rows.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Tuple
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from roombook.booking.availability import iter_occupancies
from roombook.booking.classification import EventCategory, classify
from roombook.config import (
    BIG_EVENT_BLOCK_TAG,
    BIG_EVENT_BLOCK_TITLE,
    BIG_EVENT_BUFFER_MINUTES,
)
from roombook.models.reservation import (
    ACTIVE_STATUSES,
    STATUS_APPROVED,
    STATUS_CANCELLED,
    Reservation,
)
from roombook.models.room import Room


logger = logging.getLogger(__name__)

BUFFER = timedelta(minutes=BIG_EVENT_BUFFER_MINUTES)


@dataclass
class ConflictingEvent:
    reservation_id: int
    title: str
    room_id: int
    room_name: Optional[str]
    user_id: int
    owner_email: Optional[str]
    start_time: datetime
    end_time: datetime


class BigEventCoordinator:
    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def buffered_interval(start_time: datetime, end_time: datetime) -> Tuple[datetime, datetime]:
        return start_time - BUFFER, end_time + BUFFER

    def find_conflicts(
        self,
        start_time: datetime,
        end_time: datetime,
        exclude_reservation_id: Optional[int] = None,
    ) -> List[ConflictingEvent]:
        """
        List every active booking, in any room, that clashes with the buffered
        interval of a prospective Big Event. Placeholders are not reported.
        """
        buffered_start, buffered_end = self.buffered_interval(start_time, end_time)
        conflicts = []
        for occupancy in iter_occupancies(
            self.db,
            buffered_start,
            buffered_end,
            exclude_reservation_id=exclude_reservation_id,
        ):
            if occupancy.category == EventCategory.LOCKOUT:
                continue
            reservation = occupancy.reservation
            conflicts.append(
                ConflictingEvent(
                    reservation_id=reservation.id,
                    title=reservation.title,
                    room_id=reservation.room_id,
                    room_name=reservation.room.name if reservation.room else None,
                    user_id=reservation.user_id,
                    owner_email=reservation.user.email if reservation.user else None,
                    start_time=occupancy.start,
                    end_time=occupancy.end,
                )
            )
        if conflicts:
            logger.debug(
                f"Big Event {start_time} - {end_time} blocked by {len(conflicts)} reservation(s)"
            )
        return conflicts

    def lock_out_rooms(self, reservation: Reservation) -> List[Reservation]:
        """
        Insert one placeholder per other active room for a committed Big Event.

        The primary reservation is never rolled back here: a failed insert is
        logged and an empty list returned.
        """
        buffered_start, buffered_end = self.buffered_interval(
            reservation.start_time, reservation.end_time
        )
        other_rooms = (
            self.db.query(Room)
            .filter(Room.is_active.is_(True), Room.id != reservation.room_id)
            .order_by(Room.id)
            .all()
        )
        placeholders = [
            Reservation(
                room_id=room.id,
                user_id=reservation.user_id,
                title=BIG_EVENT_BLOCK_TITLE,
                description=f"Blocked due to Big Event: {reservation.title}",
                start_time=buffered_start,
                end_time=buffered_end,
                status=STATUS_APPROVED,
                tags=[BIG_EVENT_BLOCK_TAG],
                attendees=[],
                catering_requested=False,
                is_recurring=reservation.is_recurring,
                recurrence_pattern=reservation.recurrence_pattern,
                recurrence_end_type=reservation.recurrence_end_type,
                recurrence_count=reservation.recurrence_count,
                recurrence_end_date=reservation.recurrence_end_date,
            )
            for room in other_rooms
        ]
        if not placeholders:
            return []
        try:
            self.db.add_all(placeholders)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                f"Big Event {reservation.id} saved but room lockouts failed: {e}"
            )
            return []
        logger.debug(
            f"Locked {len(placeholders)} room(s) for Big Event {reservation.id}: "
            f"{buffered_start} - {buffered_end}"
        )
        return placeholders

    def release_lockouts(self, reservation: Reservation) -> int:
        """
        Cancel the placeholders created for a Big Event. Rows are matched on the
        exact buffered start/end they were created with. The caller commits.
        """
        if classify(reservation.tags) != EventCategory.BIG_EVENT:
            return 0
        buffered_start, buffered_end = self.buffered_interval(
            reservation.start_time, reservation.end_time
        )
        candidates = (
            self.db.query(Reservation)
            .filter(
                Reservation.status.in_(ACTIVE_STATUSES),
                Reservation.start_time == buffered_start,
                Reservation.end_time == buffered_end,
            )
            .all()
        )
        released = 0
        for placeholder in candidates:
            if classify(placeholder.tags) != EventCategory.LOCKOUT:
                continue
            placeholder.status = STATUS_CANCELLED
            released += 1
        logger.debug(f"Released {released} lockout(s) of Big Event {reservation.id}")
        return released
