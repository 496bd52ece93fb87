"""
Availability checking for room reservations.

The occupied-time ledger of a room is made of two kinds of rows: plain
reservations (one interval each) and recurring series parents, whose
occurrences are expanded on the fly. Cancelled exception rows pointing at a
series parent remove single occurrences from it.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Iterator, Optional
from sqlalchemy import or_
from sqlalchemy.orm import Session
from roombook.booking.classification import EventCategory, classify
from roombook.booking.recurrence import (
    EndCondition,
    OccurrenceRef,
    RecurrenceEndType,
    RecurrencePattern,
    RecurrenceSeed,
    expand_occurrences,
)
from roombook.models.reservation import ACTIVE_STATUSES, STATUS_CANCELLED, Reservation
from roombook.utils.datetime_helpers import to_local


logger = logging.getLogger(__name__)

# Failure codes, in evaluation order
INVALID_INTERVAL = "INVALID_INTERVAL"
BIG_EVENT_ROOMS_BUSY = "BIG_EVENT_ROOMS_BUSY"
BLOCKED_BY_BIG_EVENT = "BLOCKED_BY_BIG_EVENT"
BLOCKED_BY_PLACEHOLDER = "BLOCKED_BY_PLACEHOLDER"
ROOM_CONFLICT = "ROOM_CONFLICT"
RECURRING_CONFLICT = "RECURRING_CONFLICT"


@dataclass
class AvailabilityResult:
    available: bool
    reason: Optional[str] = None
    code: Optional[str] = None
    conflicting_room_id: Optional[int] = None
    conflicting_reservation_id: Optional[int] = None


@dataclass(frozen=True)
class Occupancy:
    """One concrete interval a reservation holds in its room."""

    reservation: Reservation
    ref: OccurrenceRef
    start: datetime
    end: datetime

    @property
    def category(self) -> EventCategory:
        return classify(self.reservation.tags)

    @property
    def from_series(self) -> bool:
        return self.reservation.is_series_parent


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open interval overlap. Empty intervals overlap nothing."""
    if not (a_start < a_end and b_start < b_end):
        return False
    return a_start < b_end and b_start < a_end


def reservation_seed(reservation: Reservation) -> RecurrenceSeed:
    """
    Build the recurrence seed of a stored reservation.

    The seed is expressed in the organization timezone so daily/weekly steps
    keep the wall-clock time across DST changes.
    """
    end_type = reservation.recurrence_end_type or RecurrenceEndType.NEVER.value
    condition = EndCondition(
        RecurrenceEndType(end_type),
        count=reservation.recurrence_count,
        end_date=reservation.recurrence_end_date,
    )
    pattern = reservation.recurrence_pattern if reservation.is_recurring else RecurrencePattern.NONE.value
    return RecurrenceSeed(
        start=to_local(reservation.start_time),
        end=to_local(reservation.end_time),
        pattern=RecurrencePattern(pattern),
        end_condition=condition,
    )


def _cancelled_exception_starts(db: Session, parent_ids: Iterable[int]) -> dict:
    parent_ids = list(parent_ids)
    skipped = defaultdict(set)
    if not parent_ids:
        return skipped
    rows = (
        db.query(Reservation.parent_reservation_id, Reservation.start_time)
        .filter(
            Reservation.parent_reservation_id.in_(parent_ids),
            Reservation.status == STATUS_CANCELLED,
        )
        .all()
    )
    for parent_id, start_time in rows:
        skipped[parent_id].add(start_time)
    return skipped


def iter_occupancies(
    db: Session,
    window_start: datetime,
    window_end: datetime,
    room_id: Optional[int] = None,
    exclude_reservation_id: Optional[int] = None,
    statuses=ACTIVE_STATUSES,
) -> Iterator[Occupancy]:
    """
    Yield every interval held in [window_start, window_end).

    Plain rows come first (ordered by start), then series occurrences.
    Cancelled exceptions are subtracted from the series they belong to.
    """
    query = db.query(Reservation).filter(Reservation.status.in_(statuses))
    if room_id is not None:
        query = query.filter(Reservation.room_id == room_id)
    if exclude_reservation_id is not None:
        query = query.filter(Reservation.id != exclude_reservation_id)

    direct = (
        query.filter(
            or_(
                Reservation.is_recurring.is_(False),
                Reservation.parent_reservation_id.isnot(None),
            ),
            Reservation.start_time < window_end,
            Reservation.end_time > window_start,
        )
        .order_by(Reservation.start_time)
        .all()
    )
    for reservation in direct:
        yield Occupancy(
            reservation,
            OccurrenceRef(reservation.id, 0),
            reservation.start_time,
            reservation.end_time,
        )

    series = (
        query.filter(
            Reservation.is_recurring.is_(True),
            Reservation.parent_reservation_id.is_(None),
            Reservation.start_time < window_end,
        )
        .order_by(Reservation.start_time)
        .all()
    )
    skipped = _cancelled_exception_starts(db, (r.id for r in series))
    for reservation in series:
        seed = reservation_seed(reservation)
        for occurrence in expand_occurrences(seed, window_start, window_end):
            if occurrence.start in skipped[reservation.id]:
                continue
            yield Occupancy(
                reservation,
                OccurrenceRef(reservation.id, occurrence.index),
                occurrence.start,
                occurrence.end,
            )


def check_availability(
    db: Session,
    start_time: datetime,
    end_time: datetime,
    room_id: int,
    tags: Optional[Iterable[str]] = None,
    exclude_reservation_id: Optional[int] = None,
) -> AvailabilityResult:
    """
    Decide whether [start_time, end_time) can be booked in a room.

    Checks run in a fixed order and the first failing one is reported:
    Big Event kill switch, other Big Events, lockout placeholders in this room,
    direct conflicts in this room, recurring series in this room.
    Read-only, nothing is locked.
    """
    if not start_time < end_time:
        return AvailabilityResult(
            available=False,
            reason="End time must be after start time.",
            code=INVALID_INTERVAL,
        )

    category = classify(tags)
    logger.debug(
        f"Checking availability room_id={room_id} {start_time} - {end_time} "
        f"category={category.value} exclude={exclude_reservation_id}"
    )

    if category == EventCategory.BIG_EVENT:
        for occupancy in iter_occupancies(
            db, start_time, end_time, exclude_reservation_id=exclude_reservation_id
        ):
            return AvailabilityResult(
                available=False,
                reason=(
                    "Big Event reservations require all rooms to be available. "
                    "Another booking exists during this time slot."
                ),
                code=BIG_EVENT_ROOMS_BUSY,
                conflicting_room_id=occupancy.reservation.room_id,
                conflicting_reservation_id=occupancy.reservation.id,
            )

    for occupancy in iter_occupancies(
        db, start_time, end_time, exclude_reservation_id=exclude_reservation_id
    ):
        if occupancy.category == EventCategory.BIG_EVENT:
            return AvailabilityResult(
                available=False,
                reason=(
                    f'This time slot is blocked by a Big Event: "{occupancy.reservation.title}". '
                    "All rooms are reserved."
                ),
                code=BLOCKED_BY_BIG_EVENT,
                conflicting_room_id=occupancy.reservation.room_id,
                conflicting_reservation_id=occupancy.reservation.id,
            )

    in_room = list(
        iter_occupancies(
            db,
            start_time,
            end_time,
            room_id=room_id,
            exclude_reservation_id=exclude_reservation_id,
        )
    )

    for occupancy in in_room:
        if occupancy.category == EventCategory.LOCKOUT:
            return AvailabilityResult(
                available=False,
                reason=(
                    f'This time slot is blocked: "{occupancy.reservation.title}". '
                    "A Big Event is in progress."
                ),
                code=BLOCKED_BY_PLACEHOLDER,
                conflicting_room_id=room_id,
                conflicting_reservation_id=occupancy.reservation.id,
            )

    for occupancy in in_room:
        if not occupancy.from_series:
            return AvailabilityResult(
                available=False,
                reason=f'The room is already booked for this time slot: "{occupancy.reservation.title}".',
                code=ROOM_CONFLICT,
                conflicting_room_id=room_id,
                conflicting_reservation_id=occupancy.reservation.id,
            )

    for occupancy in in_room:
        return AvailabilityResult(
            available=False,
            reason=(
                f'The room is taken by the recurring reservation "{occupancy.reservation.title}" '
                f"on {to_local(occupancy.start):%Y-%m-%d %H:%M}."
            ),
            code=RECURRING_CONFLICT,
            conflicting_room_id=room_id,
            conflicting_reservation_id=occupancy.reservation.id,
        )

    return AvailabilityResult(available=True)
