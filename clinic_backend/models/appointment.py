"""Appointment model definitions."""

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Index, Integer, String, Time, text

from clinic_backend.core import config
from clinic_backend.database import Base

_NOT_CANCELLED = text("status <> 'cancelled'")


def _clinic_now():
    return config.clinic_now()


class Appointment(Base):
    """Represents a booked (provider, room, date, time) slot for a patient."""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False)
    date = Column(Date, nullable=False)
    time = Column(Time, nullable=False)
    reason = Column(String, nullable=False)
    status = Column(String, nullable=False, default="pending")
    reschedule_used = Column(Boolean, nullable=False, default=False)
    no_show = Column(Boolean, nullable=False, default=False)
    cancelled_by_role = Column(String)
    cancelled_at = Column(DateTime)
    # Set while the appointment sits in maintenance; cleared on reactivation.
    caused_by_block_id = Column(String)
    maintenance_batch_id = Column(String)
    created_at = Column(DateTime, default=_clinic_now)
    updated_at = Column(DateTime, default=_clinic_now, onupdate=_clinic_now)

    __table_args__ = (
        Index(
            "uq_appointments_provider_slot",
            "provider_id",
            "date",
            "time",
            unique=True,
            sqlite_where=_NOT_CANCELLED,
            postgresql_where=_NOT_CANCELLED,
        ),
        Index(
            "uq_appointments_room_slot",
            "room_id",
            "date",
            "time",
            unique=True,
            sqlite_where=_NOT_CANCELLED,
            postgresql_where=_NOT_CANCELLED,
        ),
        Index("idx_appointments_status_date", "status", "date"),
    )
