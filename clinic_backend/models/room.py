"""Treatment room model definitions."""

from sqlalchemy import Boolean, Column, Integer, String
from clinic_backend.database import Base


class Room(Base):
    """Represents a treatment room."""
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True)
    label = Column(String, nullable=False)
    active = Column(Boolean, nullable=False, default=True)
