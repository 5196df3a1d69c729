"""User model definitions."""

from sqlalchemy import Column, ForeignKey, Integer, String
from clinic_backend.database import Base


class User(Base):
    """Represents an application user.

    One login can act in several portals: ``role`` marks clinic staff
    (``admin``) and the optional links grant the provider and patient views.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True)
    role = Column(String)  # admin/staff/None
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=True)
