from datetime import date, time

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_backend.auth.context import SessionContext
from clinic_backend.auth.dependencies import get_session_context
from clinic_backend.routes.common import database_unavailable, ensure_database_ready, get_db, to_http_exception
from clinic_backend.services import booking_service, records, schedule_service
from clinic_backend.scheduling.errors import SchedulingError
from clinic_backend.scheduling.slots import DaySlots

router = APIRouter(tags=['schedule'])


class SlotOptionResponse(BaseModel):
    time: time
    room_id: int
    room_label: str
    is_default: bool
    is_original: bool = False


class DaySlotsResponse(BaseModel):
    date: date
    morning: list[SlotOptionResponse]
    afternoon: list[SlotOptionResponse]
    blocked: bool
    blocked_reason: str | None = None
    unavailable: bool = False


class CalendarDayResponse(BaseModel):
    date: date
    blocked: bool
    reason: str | None = None
    working_day: bool
    total_appointments: int


class ScheduleEntryRequest(BaseModel):
    day_of_week: int
    start_time: time
    end_time: time

    @field_validator('day_of_week')
    @classmethod
    def validate_day_of_week(cls, value: int) -> int:
        if not 0 <= value <= 6:
            raise ValueError('day_of_week must be between 0 (Monday) and 6 (Sunday).')
        return value


class ScheduleEntryResponse(BaseModel):
    id: int
    provider_id: int
    day_of_week: int
    start_time: time
    end_time: time
    active: bool

    class Config:
        from_attributes = True


def to_day_slots_response(slots: DaySlots) -> DaySlotsResponse:
    def option(item) -> SlotOptionResponse:
        return SlotOptionResponse(
            time=item.time,
            room_id=item.room_id,
            room_label=item.room_label,
            is_default=item.is_default,
            is_original=item.is_original,
        )

    return DaySlotsResponse(
        date=slots.date,
        morning=[option(item) for item in slots.morning],
        afternoon=[option(item) for item in slots.afternoon],
        blocked=slots.blocked,
        blocked_reason=slots.blocked_reason,
        unavailable=slots.unavailable,
    )


def _calendar_response(calendar: list[booking_service.CalendarDay]) -> list[CalendarDayResponse]:
    return [CalendarDayResponse(**day._asdict()) for day in calendar]


@router.get('/providers/{provider_id}/slots', response_model=DaySlotsResponse)
def get_provider_slots(
    provider_id: int,
    day: date = Query(...),
    room_id: int | None = Query(default=None),
    context: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        slots = booking_service.compute_day_slots(
            db, provider_id, day, room_id=room_id, lead_time_minutes=booking_service.lead_time_for(context),
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    return to_day_slots_response(slots)


@router.get('/providers/{provider_id}/calendar', response_model=list[CalendarDayResponse])
def get_provider_calendar(
    provider_id: int,
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
    context: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    del context
    ensure_database_ready()

    try:
        records.get_provider(db, provider_id)
        calendar = booking_service.get_month_calendar(db, provider_id, year, month)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    return _calendar_response(calendar)


@router.get('/calendar', response_model=list[CalendarDayResponse])
def get_clinic_calendar(
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
    context: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    """Clinic-wide month view: global blocks and all providers' appointment counts."""
    del context
    ensure_database_ready()

    try:
        calendar = booking_service.get_month_calendar(db, None, year, month)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    return _calendar_response(calendar)


@router.get('/providers/{provider_id}/weekly', response_model=list[ScheduleEntryResponse])
def list_weekly_schedule(
    provider_id: int,
    include_inactive: bool = Query(default=False),
    context: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    del context
    ensure_database_ready()

    try:
        return schedule_service.list_schedule(db, provider_id, include_inactive=include_inactive)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post(
    '/providers/{provider_id}/weekly',
    response_model=ScheduleEntryResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_weekly_schedule_entry(
    provider_id: int,
    data: ScheduleEntryRequest,
    context: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return schedule_service.add_schedule_entry(
            db,
            provider_id,
            context=context,
            day_of_week=data.day_of_week,
            start_time=data.start_time,
            end_time=data.end_time,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/weekly/{entry_id}', response_model=ScheduleEntryResponse)
def deactivate_weekly_schedule_entry(
    entry_id: int,
    context: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return schedule_service.deactivate_schedule_entry(db, entry_id, context=context)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
