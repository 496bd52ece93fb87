from datetime import datetime, timezone
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    Date,
    JSON,
    ForeignKey,
    CheckConstraint,
)
from sqlalchemy.orm import relationship
from roombook.db import Base, UTCDateTime


STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"
STATUS_CANCELLED = "cancelled"

ACTIVE_STATUSES = (STATUS_PENDING, STATUS_APPROVED)

PATTERN_NONE = "none"


def utcnow():
    return datetime.now(timezone.utc)


class Reservation(Base):
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    start_time = Column(UTCDateTime, nullable=False, index=True)
    end_time = Column(UTCDateTime, nullable=False, index=True)
    status = Column(String, nullable=False, default=STATUS_PENDING, index=True)
    tags = Column(JSON, nullable=False, default=list)
    attendees = Column(JSON, nullable=False, default=list)
    catering_requested = Column(Boolean, nullable=False, default=False)

    is_recurring = Column(Boolean, nullable=False, default=False)
    recurrence_pattern = Column(String, nullable=False, default=PATTERN_NONE)
    recurrence_end_type = Column(String, nullable=True)
    recurrence_count = Column(Integer, nullable=True)
    recurrence_end_date = Column(Date, nullable=True)
    # Set on cancellation-exception rows and legacy child instances
    parent_reservation_id = Column(
        Integer, ForeignKey("reservations.id"), nullable=True, index=True
    )

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    room = relationship("Room", back_populates="reservations")
    user = relationship("User", back_populates="reservations")

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="reservation_time_valid"),
        CheckConstraint(
            "status in ('pending','approved','rejected','cancelled')",
            name="reservation_status_valid",
        ),
    )

    @property
    def is_active(self):
        return self.status in ACTIVE_STATUSES

    @property
    def is_series_parent(self):
        return bool(self.is_recurring) and self.parent_reservation_id is None

    def __repr__(self):
        return f"<Reservation {self.id} room={self.room_id} {self.start_time}-{self.end_time} {self.status}>"
