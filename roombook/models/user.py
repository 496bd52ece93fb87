from sqlalchemy.orm import relationship
from sqlalchemy import Column, Integer, String
from roombook.db import Base


ROLE_ADMIN = "admin"
ROLE_USER = "user"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, unique=True, index=True, nullable=False)
    email = Column(String, unique=True, nullable=False)
    full_name = Column(String, nullable=True)
    hashed_password = Column(String, nullable=False)
    role = Column(String, nullable=False, default=ROLE_USER)

    reservations = relationship("Reservation", back_populates="user")

    @property
    def is_admin(self):
        return self.role == ROLE_ADMIN
