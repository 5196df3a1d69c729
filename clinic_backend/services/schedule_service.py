"""Weekly schedule writes. Entries are deactivated, never deleted."""

import logging
from datetime import time

from sqlalchemy.orm import Session

from clinic_backend.auth.context import SessionContext, require_admin
from clinic_backend.models.schedule import WeeklyScheduleEntry
from clinic_backend.services import records
from clinic_backend.services.booking_service import invalidate_provider
from clinic_backend.scheduling.errors import NotFound, ValidationFailed
from clinic_backend.scheduling.weekly import normalize_weekday, to_minutes

logger = logging.getLogger(__name__)


def list_schedule(db: Session, provider_id: int, include_inactive: bool = False) -> list[WeeklyScheduleEntry]:
    records.get_provider(db, provider_id)
    query = db.query(WeeklyScheduleEntry).filter(WeeklyScheduleEntry.provider_id == provider_id)
    if not include_inactive:
        query = query.filter(WeeklyScheduleEntry.active.is_(True))
    return query.order_by(WeeklyScheduleEntry.day_of_week, WeeklyScheduleEntry.start_time).all()


def add_schedule_entry(
    db: Session,
    provider_id: int,
    *,
    context: SessionContext,
    day_of_week: int,
    start_time: time,
    end_time: time,
) -> WeeklyScheduleEntry:
    require_admin(context)
    if to_minutes(end_time) <= to_minutes(start_time):
        raise ValidationFailed('The end time must be after the start time.')
    records.get_provider(db, provider_id)

    entry = WeeklyScheduleEntry(
        provider_id=provider_id,
        day_of_week=normalize_weekday(day_of_week),
        start_time=start_time,
        end_time=end_time,
        active=True,
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    invalidate_provider(provider_id)

    logger.info('Added schedule entry %s for provider %s', entry.id, provider_id)
    return entry


def deactivate_schedule_entry(db: Session, entry_id: int, *, context: SessionContext) -> WeeklyScheduleEntry:
    require_admin(context)
    entry = db.get(WeeklyScheduleEntry, entry_id)
    if entry is None:
        raise NotFound('Schedule entry not found.')

    if entry.active:
        entry.active = False
        db.commit()
        db.refresh(entry)
        invalidate_provider(entry.provider_id)
        logger.info('Deactivated schedule entry %s for provider %s', entry.id, entry.provider_id)
    return entry
