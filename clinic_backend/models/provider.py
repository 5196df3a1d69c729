"""Provider model definitions."""

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String
from clinic_backend.database import Base


class Provider(Base):
    """Represents a clinician who takes appointments."""
    __tablename__ = "providers"

    id = Column(Integer, primary_key=True)
    full_name = Column(String, nullable=False)
    default_room_id = Column(Integer, ForeignKey("rooms.id"), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
