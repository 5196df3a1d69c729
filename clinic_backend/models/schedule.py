"""Weekly schedule model definitions."""

from sqlalchemy import Boolean, CheckConstraint, Column, ForeignKey, Integer, Time
from clinic_backend.database import Base


class WeeklyScheduleEntry(Base):
    """A recurring working interval for a provider (day_of_week 0=Monday..6=Sunday)."""
    __tablename__ = "weekly_schedule"

    id = Column(Integer, primary_key=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint('day_of_week >= 0 AND day_of_week <= 6', name='chk_weekly_schedule_day'),
        CheckConstraint('start_time < end_time', name='chk_weekly_schedule_times'),
    )
