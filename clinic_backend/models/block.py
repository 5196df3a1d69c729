"""Schedule block model definitions."""

from sqlalchemy import Boolean, Column, Date, ForeignKey, Integer, String
from clinic_backend.database import Base


class ScheduleBlock(Base):
    """A date range during which the clinic (provider_id NULL) or one provider takes no bookings.

    Annual blocks only use the month/day of ``date_from``/``date_to`` and may
    wrap across the new year.
    """
    __tablename__ = "schedule_blocks"

    group_id = Column(String, primary_key=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=True, index=True)
    date_from = Column(Date, nullable=False)
    date_to = Column(Date, nullable=False)
    reason = Column(String)
    annual_recurring = Column(Boolean, nullable=False, default=False)

    @property
    def scope(self) -> str:
        return "global" if self.provider_id is None else str(self.provider_id)
