from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List
from roombook.db import get_db
from roombook.models.room import Room
from roombook.schemas.room import RoomCreate, RoomUpdate, RoomResponse
from roombook.utils.auth import require_admin


router = APIRouter(
    prefix="/rooms",
    tags=["rooms"],
)


@router.post("/", response_model=RoomResponse, status_code=status.HTTP_201_CREATED)
def create_room(room: RoomCreate, db: Session = Depends(get_db), current_user: dict = Depends(require_admin)):
    """
    Create a new meeting room.
    Requires administrator privileges.
    """
    if db.query(Room).filter(Room.name == room.name).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Room name already exists")
    db_room = Room(**room.model_dump())
    db.add(db_room)
    db.commit()
    db.refresh(db_room)
    return db_room


@router.get("/", response_model=List[RoomResponse])
def get_rooms(active_only: bool = True, skip: int = 0, limit: int = 100, db: Session = Depends(get_db)):
    """
    Retrieve meeting rooms, active ones only unless asked otherwise.
    """
    query = db.query(Room)
    if active_only:
        query = query.filter(Room.is_active.is_(True))
    rooms = query.order_by(Room.name).offset(skip).limit(limit).all()
    return rooms


@router.get("/{room_id}", response_model=RoomResponse)
def get_room(room_id: int, db: Session = Depends(get_db)):
    """
    Retrieve a specific meeting room by ID.
    """
    room = db.query(Room).filter(Room.id == room_id).first()
    if not room:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")
    return room


@router.put("/{room_id}", response_model=RoomResponse)
def update_room(room_id: int, room_update: RoomUpdate, db: Session = Depends(get_db), current_user: dict = Depends(require_admin)):
    """
    Update a meeting room's details.
    Requires administrator privileges.
    """
    db_room = db.query(Room).filter(Room.id == room_id).first()
    if not db_room:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")

    update_data = room_update.model_dump(exclude_unset=True)
    for key, value in update_data.items():
        setattr(db_room, key, value)

    db.commit()
    db.refresh(db_room)
    return db_room


@router.delete("/{room_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_room(room_id: int, db: Session = Depends(get_db), current_user: dict = Depends(require_admin)):
    """
    Deactivate a meeting room. Its reservation history is kept.
    Requires administrator privileges.
    """
    db_room = db.query(Room).filter(Room.id == room_id).first()
    if not db_room:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")

    db_room.is_active = False
    db.commit()
    return None
