from pydantic import BaseModel, ConfigDict, EmailStr
from datetime import date, datetime
from typing import List, Literal, Optional
from roombook.booking.recurrence import RecurrenceEndType, RecurrencePattern


class ReservationCreate(BaseModel):
    # Required fields are checked by the lifecycle so the caller gets a readable message
    room_id: Optional[int] = None
    title: Optional[str] = None
    description: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    tags: List[str] = []
    attendees: List[EmailStr] = []
    catering_requested: bool = False
    recurrence_pattern: RecurrencePattern = RecurrencePattern.NONE
    recurrence_end_type: Optional[RecurrenceEndType] = None
    recurrence_count: Optional[int] = None
    recurrence_end_date: Optional[date] = None


class ReservationUpdate(BaseModel):
    room_id: Optional[int] = None
    title: Optional[str] = None
    description: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    tags: Optional[List[str]] = None
    attendees: Optional[List[EmailStr]] = None
    catering_requested: Optional[bool] = None


class StatusUpdate(BaseModel):
    status: Literal["approved", "rejected"]


class ReservationResponse(BaseModel):
    id: int
    room_id: int
    user_id: int
    title: str
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    status: str
    tags: List[str]
    attendees: List[str]
    catering_requested: bool
    is_recurring: bool
    recurrence_pattern: str
    recurrence_end_type: Optional[str] = None
    recurrence_count: Optional[int] = None
    recurrence_end_date: Optional[date] = None
    parent_reservation_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ConflictingEventResponse(BaseModel):
    reservation_id: int
    title: str
    room_id: int
    room_name: Optional[str] = None
    user_id: int
    owner_email: Optional[str] = None
    start_time: datetime
    end_time: datetime

    model_config = ConfigDict(from_attributes=True)


class CreateReservationResponse(BaseModel):
    success: bool
    reservation_id: int
    status: str
    lockouts_created: int = 0


class ActionResponse(BaseModel):
    success: bool
    message: Optional[str] = None


class OccurrenceRefResponse(BaseModel):
    parent_id: int
    occurrence_index: int

    model_config = ConfigDict(from_attributes=True)


class CalendarEntry(BaseModel):
    ref: OccurrenceRefResponse
    reservation_id: int
    room_id: int
    title: str
    start_time: datetime
    end_time: datetime
    status: str
    tags: List[str]
    is_recurring: bool
    recurrence_pattern: str
