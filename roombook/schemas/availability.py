from pydantic import BaseModel
from datetime import datetime
from typing import List, Optional


class AvailabilityRequest(BaseModel):
    start_time: datetime
    end_time: datetime
    room_id: int
    tags: List[str] = []
    exclude_reservation_id: Optional[int] = None


class AvailabilityResponse(BaseModel):
    available: bool
    reason: Optional[str] = None
    code: Optional[str] = None
    conflicting_room_id: Optional[int] = None
    conflicting_reservation_id: Optional[int] = None
