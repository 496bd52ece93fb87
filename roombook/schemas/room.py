from pydantic import BaseModel, ConfigDict
from typing import List, Optional

class RoomBase(BaseModel):
    name: str
    capacity: int
    location: Optional[str] = None
    features: List[str] = []

class RoomCreate(RoomBase):
    is_active: bool = True

class RoomUpdate(BaseModel):
    name: Optional[str] = None
    capacity: Optional[int] = None
    location: Optional[str] = None
    features: Optional[List[str]] = None
    is_active: Optional[bool] = None

class RoomResponse(RoomBase):
    id: int
    is_active: bool

    model_config = ConfigDict(from_attributes=True)
