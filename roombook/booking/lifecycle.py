"""
Reservation lifecycle: create, approve/reject, cancel, cancel one occurrence
and edit, plus the cascades these actions trigger.

Every public action returns a result object. Expected failures (bad input,
permissions, past events, conflicts) are reported through it, and storage
errors are caught at the action boundary and turned into a generic failure.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from functools import wraps
from typing import List, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from roombook.booking.availability import (
    BIG_EVENT_ROOMS_BUSY,
    check_availability,
    iter_occupancies,
)
from roombook.booking.big_event import BigEventCoordinator, ConflictingEvent
from roombook.booking.classification import EventCategory, classify
from roombook.booking.recurrence import (
    EndCondition,
    RecurrenceEndType,
    RecurrencePattern,
    RecurrenceSeed,
    expand_occurrences,
)
from roombook.config import BIG_EVENT_BLOCK_TAG, COMBINED_ROOMS
from roombook.models.reservation import (
    ACTIVE_STATUSES,
    PATTERN_NONE,
    STATUS_APPROVED,
    STATUS_CANCELLED,
    STATUS_PENDING,
    STATUS_REJECTED,
    Reservation,
)
from roombook.models.room import Room
from roombook.models.user import ROLE_ADMIN
from roombook.notifications import Notifier
from roombook.utils.datetime_helpers import ensure_aware, get_now, get_today, to_local


logger = logging.getLogger(__name__)

# error_kind values
VALIDATION = "validation"
PERMISSION = "permission"
NOT_FOUND = "not_found"
TEMPORAL = "temporal"
CONFLICT = "conflict"
STORAGE = "storage"

CONFLICT_BLOCKING = "BLOCKING"

PERMISSION_DENIED = "You are not allowed to do this."


@dataclass
class ActionResult:
    success: bool
    message: Optional[str] = None
    error_kind: Optional[str] = None


@dataclass
class CreateResult:
    success: bool
    reservation_id: Optional[int] = None
    status: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    conflict_type: Optional[str] = None
    conflicting_events: List[ConflictingEvent] = field(default_factory=list)
    lockouts_created: int = 0


def action_boundary(failure):
    """Roll back and return failure() when the store raises."""

    def decorator(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            try:
                return func(self, *args, **kwargs)
            except SQLAlchemyError:
                self.db.rollback()
                logger.exception(f"{func.__name__} failed with a storage error")
                return failure()

        return wrapper

    return decorator


def parse_instant(value) -> datetime:
    """Accept datetimes or ISO 8601 strings; naive values are organization-local."""
    if isinstance(value, datetime):
        return ensure_aware(value)
    if isinstance(value, str):
        return ensure_aware(datetime.fromisoformat(value))
    raise ValueError(f"Unsupported instant: {value!r}")


def _unique(values) -> list:
    seen = []
    for value in values or []:
        value = value.strip()
        if value and value not in seen:
            seen.append(value)
    return seen


def _owner_info(reservation: Reservation) -> dict:
    user = reservation.user
    if user is None:
        return {"id": reservation.user_id}
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "full_name": user.full_name,
        "role": user.role,
    }


class ReservationManager:
    def __init__(self, db: Session, notifier: Notifier, current_user: Optional[dict]):
        self.db = db
        self.notifier = notifier
        self.current_user = current_user
        self.big_events = BigEventCoordinator(db)

    @property
    def is_admin(self) -> bool:
        return bool(self.current_user) and self.current_user.get("role") == ROLE_ADMIN

    def _may_manage(self, reservation: Reservation) -> bool:
        return self.is_admin or reservation.user_id == self.current_user.get("id")

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    @action_boundary(
        lambda: CreateResult(
            success=False,
            error="Failed to create reservation. Please try again.",
            error_kind=STORAGE,
        )
    )
    def create(self, data) -> CreateResult:
        if not self.current_user:
            return CreateResult(False, error="You must be logged in to create a reservation.", error_kind=PERMISSION)

        if not data.room_id or not (data.title or "").strip() or data.start_time is None or data.end_time is None:
            return CreateResult(
                False,
                error="Missing required fields: room_id, title, start_time and end_time are required.",
                error_kind=VALIDATION,
            )
        try:
            start_time = parse_instant(data.start_time)
            end_time = parse_instant(data.end_time)
        except ValueError:
            return CreateResult(False, error="Invalid date format for start_time or end_time.", error_kind=VALIDATION)
        if end_time <= start_time:
            return CreateResult(False, error="End time must be after start time.", error_kind=VALIDATION)

        tags = _unique(data.tags)
        if BIG_EVENT_BLOCK_TAG in tags:
            return CreateResult(False, error=f"The '{BIG_EVENT_BLOCK_TAG}' tag is reserved.", error_kind=VALIDATION)

        try:
            recurrence = self._recurrence_fields(data, start_time)
        except ValueError as e:
            return CreateResult(False, error=str(e), error_kind=VALIDATION)

        if to_local(start_time).date() <= get_today():
            return CreateResult(
                False,
                error="Reservations must be made at least one day in advance.",
                error_kind=TEMPORAL,
            )

        room = self.db.get(Room, data.room_id)
        if room is None:
            return CreateResult(False, error="Invalid room selected.", error_kind=NOT_FOUND)
        if not room.is_active:
            return CreateResult(False, error="The selected room is not available for booking.", error_kind=VALIDATION)

        category = classify(tags)
        availability = check_availability(self.db, start_time, end_time, room.id, tags)
        if not availability.available:
            logger.debug(f"Create rejected for room {room.id}: {availability.code}")
            if availability.code == BIG_EVENT_ROOMS_BUSY:
                return self._blocked(self.big_events.find_conflicts(start_time, end_time))
            return CreateResult(
                False,
                error=availability.reason or "The room is not available for the selected time slot.",
                error_kind=CONFLICT,
            )

        if recurrence["is_recurring"]:
            clash = self._series_clash(start_time, end_time, room.id, tags, recurrence)
            if clash is not None:
                occurrence, availability = clash
                logger.debug(
                    f"Create rejected for room {room.id}: occurrence {occurrence.index} {availability.code}"
                )
                if availability.code == BIG_EVENT_ROOMS_BUSY:
                    return self._blocked(self.big_events.find_conflicts(occurrence.start, occurrence.end))
                return CreateResult(
                    False,
                    error=f"Occurrence on {occurrence.start:%Y-%m-%d}: {availability.reason}",
                    error_kind=CONFLICT,
                )

        status = STATUS_APPROVED if self.is_admin else STATUS_PENDING

        if category == EventCategory.BIG_EVENT:
            conflicts = self.big_events.find_conflicts(start_time, end_time)
            if conflicts:
                return self._blocked(conflicts)

        reservation = Reservation(
            room_id=room.id,
            user_id=self.current_user["id"],
            title=data.title.strip(),
            description=data.description or None,
            start_time=start_time,
            end_time=end_time,
            status=status,
            tags=tags,
            attendees=_unique(data.attendees),
            catering_requested=bool(data.catering_requested),
            parent_reservation_id=None,
            **recurrence,
        )
        self.db.add(reservation)
        self.db.commit()
        self.db.refresh(reservation)
        logger.debug(f"Created reservation {reservation.id} ({status}) in room {room.id}")

        lockouts = []
        if category == EventCategory.BIG_EVENT:
            lockouts = self.big_events.lock_out_rooms(reservation)

        self._notify_created(reservation)
        return CreateResult(
            True,
            reservation_id=reservation.id,
            status=status,
            lockouts_created=len(lockouts),
        )

    def _recurrence_fields(self, data, start_time: datetime) -> dict:
        pattern = RecurrencePattern(data.recurrence_pattern or PATTERN_NONE)
        if pattern == RecurrencePattern.NONE:
            return {
                "is_recurring": False,
                "recurrence_pattern": PATTERN_NONE,
                "recurrence_end_type": None,
                "recurrence_count": None,
                "recurrence_end_date": None,
            }

        end_type = RecurrenceEndType(data.recurrence_end_type or RecurrenceEndType.NEVER)
        count = None
        end_date = None
        if end_type == RecurrenceEndType.COUNT:
            count = data.recurrence_count
            if not count or count < 1:
                raise ValueError("Recurrence count must be at least 1.")
        elif end_type == RecurrenceEndType.DATE:
            end_date = data.recurrence_end_date
            if isinstance(end_date, str):
                end_date = date.fromisoformat(end_date)
            if end_date is None:
                raise ValueError("Recurrence end date is required.")
            if end_date < to_local(start_time).date():
                raise ValueError("Recurrence end date must not be before the first occurrence.")
        return {
            "is_recurring": True,
            "recurrence_pattern": pattern.value,
            "recurrence_end_type": end_type.value,
            "recurrence_count": count,
            "recurrence_end_date": end_date,
        }

    def _series_clash(self, start_time: datetime, end_time: datetime, room_id: int, tags: list, recurrence: dict):
        """First later occurrence of a new series that cannot be booked, with the reason."""
        seed = RecurrenceSeed(
            start=to_local(start_time),
            end=to_local(end_time),
            pattern=RecurrencePattern(recurrence["recurrence_pattern"]),
            end_condition=EndCondition(
                RecurrenceEndType(recurrence["recurrence_end_type"]),
                count=recurrence["recurrence_count"],
                end_date=recurrence["recurrence_end_date"],
            ),
        )
        for occurrence in expand_occurrences(seed, None, None):
            if occurrence.index == 0:
                continue
            availability = check_availability(self.db, occurrence.start, occurrence.end, room_id, tags)
            if not availability.available:
                return occurrence, availability
        return None

    def _blocked(self, conflicts: List[ConflictingEvent]) -> CreateResult:
        return CreateResult(
            False,
            error=(
                f"{len(conflicts)} existing reservation(s) clash with this Big Event. "
                "They must be cancelled before the Big Event can be booked."
            ),
            error_kind=CONFLICT,
            conflict_type=CONFLICT_BLOCKING,
            conflicting_events=conflicts,
        )

    def _notify_created(self, reservation: Reservation):
        requester = self.current_user
        if reservation.status == STATUS_PENDING:
            self.notifier.notify_pending_approval(reservation, requester)
            self.notifier.send_chat_alert(reservation, requester, STATUS_PENDING)
        if reservation.catering_requested:
            self.notifier.notify_catering(reservation, requester)
        if reservation.status == STATUS_APPROVED and reservation.attendees:
            self.notifier.send_invitations(reservation, requester)

    # ------------------------------------------------------------------
    # Approve / reject
    # ------------------------------------------------------------------

    @action_boundary(
        lambda: ActionResult(False, "Failed to update reservation status.", STORAGE)
    )
    def update_status(self, reservation_id: int, status: str) -> ActionResult:
        if not reservation_id:
            return ActionResult(False, "Reservation ID is required.", VALIDATION)
        if status not in (STATUS_APPROVED, STATUS_REJECTED):
            return ActionResult(False, "Status must be 'approved' or 'rejected'.", VALIDATION)
        if not self.is_admin:
            return ActionResult(False, "Only administrators can update reservation status.", PERMISSION)

        reservation = self.db.get(Reservation, reservation_id)
        if reservation is None:
            return ActionResult(False, "Reservation not found.", NOT_FOUND)
        if reservation.end_time < get_now():
            return ActionResult(False, "Past reservations cannot be modified.", TEMPORAL)
        if reservation.status in (STATUS_CANCELLED, STATUS_REJECTED):
            return ActionResult(False, f"This reservation is already {reservation.status}.", VALIDATION)
        if reservation.status == STATUS_APPROVED and status == STATUS_REJECTED:
            return ActionResult(False, "Approved reservations can only be cancelled.", VALIDATION)

        previous = reservation.status
        reservation.status = status
        if status == STATUS_APPROVED and previous != STATUS_APPROVED:
            children = (
                self.db.query(Reservation)
                .filter(
                    Reservation.parent_reservation_id == reservation.id,
                    Reservation.status == STATUS_PENDING,
                )
                .all()
            )
            for child in children:
                child.status = STATUS_APPROVED
            if children:
                logger.debug(f"Approved {len(children)} child row(s) of {reservation.id}")
        if status == STATUS_REJECTED:
            released = self.big_events.release_lockouts(reservation)
            if released:
                logger.debug(f"Released {released} lockout(s) of rejected reservation {reservation.id}")
        self.db.commit()
        logger.debug(f"Reservation {reservation.id}: {previous} -> {status}")

        if previous != status:
            owner = _owner_info(reservation)
            self.notifier.send_chat_alert(reservation, owner, status)
            if status == STATUS_APPROVED and reservation.attendees:
                self.notifier.send_invitations(reservation, owner)
        return ActionResult(True, f"Reservation {status}.")

    # ------------------------------------------------------------------
    # Cancel
    # ------------------------------------------------------------------

    @action_boundary(
        lambda: ActionResult(False, "An error occurred while cancelling the reservation.", STORAGE)
    )
    def cancel(self, reservation_id: int) -> ActionResult:
        if not reservation_id:
            return ActionResult(False, "Reservation ID is required.", VALIDATION)
        if not self.current_user:
            return ActionResult(False, "You must be logged in to do this.", PERMISSION)

        reservation = self.db.get(Reservation, reservation_id)
        if reservation is None:
            return ActionResult(False, "Reservation not found.", NOT_FOUND)
        if reservation.status == STATUS_CANCELLED:
            return ActionResult(False, "This reservation has already been cancelled.", VALIDATION)
        if reservation.status == STATUS_REJECTED:
            return ActionResult(False, "Rejected reservations cannot be cancelled.", VALIDATION)
        if not self._may_manage(reservation):
            return ActionResult(False, PERMISSION_DENIED, PERMISSION)
        if reservation.end_time < get_now():
            return ActionResult(False, "Past reservations cannot be cancelled.", TEMPORAL)

        reservation.status = STATUS_CANCELLED
        released = self.big_events.release_lockouts(reservation)
        cascaded = self._cancel_combined_children(reservation)
        self.db.commit()
        logger.debug(
            f"Cancelled reservation {reservation.id} "
            f"(lockouts released={released}, combined-room rows={cascaded})"
        )

        self.notifier.send_cancellations(reservation)
        return ActionResult(True, "Reservation cancelled successfully.")

    def _cancel_combined_children(self, reservation: Reservation) -> int:
        room = reservation.room
        child_names = COMBINED_ROOMS.get(room.name) if room else None
        if not child_names:
            return 0
        children = (
            self.db.query(Reservation)
            .join(Room, Reservation.room_id == Room.id)
            .filter(
                Room.name.in_(child_names),
                Reservation.status.in_(ACTIVE_STATUSES),
                Reservation.start_time == reservation.start_time,
                Reservation.end_time == reservation.end_time,
            )
            .all()
        )
        for child in children:
            child.status = STATUS_CANCELLED
        return len(children)

    @action_boundary(
        lambda: ActionResult(False, "An error occurred while cancelling the occurrence.", STORAGE)
    )
    def cancel_single_instance(self, parent_id: int, instance_date_iso: str) -> ActionResult:
        if not self.current_user:
            return ActionResult(False, "You must be logged in to do this.", PERMISSION)
        try:
            instance_date = date.fromisoformat(instance_date_iso)
        except (TypeError, ValueError):
            return ActionResult(False, "Invalid occurrence date.", VALIDATION)

        parent = self.db.get(Reservation, parent_id)
        if parent is None:
            return ActionResult(False, "Reservation not found.", NOT_FOUND)
        if not parent.is_series_parent or parent.recurrence_pattern != RecurrencePattern.WEEKLY.value:
            return ActionResult(
                False,
                "Only weekly recurring reservations support cancelling a single occurrence.",
                VALIDATION,
            )
        if parent.status == STATUS_CANCELLED:
            return ActionResult(False, "This recurring reservation has already been cancelled.", VALIDATION)
        if not self._may_manage(parent):
            return ActionResult(False, PERMISSION_DENIED, PERMISSION)

        local_start = to_local(parent.start_time)
        occurrence_start = datetime.combine(instance_date, local_start.timetz())
        occurrence_end = occurrence_start + (parent.end_time - parent.start_time)
        if occurrence_end < get_now():
            return ActionResult(False, "Past occurrences cannot be cancelled.", TEMPORAL)

        exception = (
            self.db.query(Reservation)
            .filter(
                Reservation.parent_reservation_id == parent.id,
                Reservation.start_time == occurrence_start,
            )
            .first()
        )
        if exception is not None:
            exception.status = STATUS_CANCELLED
        else:
            exception = Reservation(
                room_id=parent.room_id,
                user_id=parent.user_id,
                title=parent.title,
                description=parent.description,
                start_time=occurrence_start,
                end_time=occurrence_end,
                status=STATUS_CANCELLED,
                tags=list(parent.tags or []),
                attendees=list(parent.attendees or []),
                catering_requested=parent.catering_requested,
                is_recurring=False,
                recurrence_pattern=PATTERN_NONE,
                parent_reservation_id=parent.id,
            )
            self.db.add(exception)
        self.db.commit()
        logger.debug(f"Cancelled occurrence {instance_date} of series {parent.id}")

        self.notifier.send_cancellations(exception)
        return ActionResult(True, f"The occurrence on {instance_date.isoformat()} was cancelled.")

    # ------------------------------------------------------------------
    # Edit
    # ------------------------------------------------------------------

    @action_boundary(
        lambda: ActionResult(False, "Failed to update reservation.", STORAGE)
    )
    def update(self, reservation_id: int, changes) -> ActionResult:
        if not self.current_user:
            return ActionResult(False, "You must be logged in to do this.", PERMISSION)
        reservation = self.db.get(Reservation, reservation_id)
        if reservation is None:
            return ActionResult(False, "Reservation not found.", NOT_FOUND)
        if not self._may_manage(reservation):
            return ActionResult(False, PERMISSION_DENIED, PERMISSION)
        if not reservation.is_active:
            return ActionResult(False, f"This reservation is {reservation.status} and cannot be edited.", VALIDATION)
        if reservation.end_time < get_now():
            return ActionResult(False, "Past reservations cannot be modified.", TEMPORAL)
        if classify(reservation.tags) != EventCategory.STANDARD:
            return ActionResult(
                False,
                "Big Event reservations cannot be edited. Cancel and book again instead.",
                VALIDATION,
            )

        updates = changes.model_dump(exclude_unset=True)
        try:
            start_time = parse_instant(updates.get("start_time") or reservation.start_time)
            end_time = parse_instant(updates.get("end_time") or reservation.end_time)
        except ValueError:
            return ActionResult(False, "Invalid date format for start_time or end_time.", VALIDATION)
        if end_time <= start_time:
            return ActionResult(False, "End time must be after start time.", VALIDATION)
        tags = _unique(updates["tags"]) if "tags" in updates else list(reservation.tags or [])
        if classify(tags) != EventCategory.STANDARD:
            return ActionResult(False, "Big Event tags cannot be added to an existing reservation.", VALIDATION)

        moved = start_time != reservation.start_time or end_time != reservation.end_time
        # Cancelled occurrences are keyed by their original start times
        if reservation.is_series_parent and (moved or (updates.get("room_id") or reservation.room_id) != reservation.room_id):
            return ActionResult(
                False,
                "Recurring reservations cannot be rescheduled. Cancel the series and book it again instead.",
                VALIDATION,
            )
        if moved and to_local(start_time).date() <= get_today():
            return ActionResult(False, "Reservations must be made at least one day in advance.", TEMPORAL)

        room_id = updates.get("room_id") or reservation.room_id
        room = self.db.get(Room, room_id)
        if room is None:
            return ActionResult(False, "Invalid room selected.", NOT_FOUND)
        if not room.is_active:
            return ActionResult(False, "The selected room is not available for booking.", VALIDATION)

        availability = check_availability(
            self.db, start_time, end_time, room.id, tags, exclude_reservation_id=reservation.id
        )
        if not availability.available:
            return ActionResult(False, availability.reason, CONFLICT)

        reservation.room_id = room.id
        reservation.start_time = start_time
        reservation.end_time = end_time
        reservation.tags = tags
        if updates.get("title"):
            reservation.title = updates["title"].strip()
        if "description" in updates:
            reservation.description = updates["description"] or None
        if "attendees" in updates:
            reservation.attendees = _unique(updates["attendees"])
        if "catering_requested" in updates:
            reservation.catering_requested = bool(updates["catering_requested"])
        self.db.commit()
        logger.debug(f"Updated reservation {reservation.id}")
        return ActionResult(True, "Reservation updated.")

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def calendar(self, window_start: datetime, window_end: datetime, room_id: Optional[int] = None):
        """Active reservations in a window, recurring series expanded."""
        occupancies = list(
            iter_occupancies(self.db, ensure_aware(window_start), ensure_aware(window_end), room_id=room_id)
        )
        occupancies.sort(key=lambda o: (o.start, o.reservation.room_id))
        return occupancies
