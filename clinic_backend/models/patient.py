"""Patient model definitions."""

from sqlalchemy import Column, Integer, String
from clinic_backend.database import Base


class Patient(Base):
    """Represents a patient."""
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True)
    full_name = Column(String, nullable=False)
    phone = Column(String)
