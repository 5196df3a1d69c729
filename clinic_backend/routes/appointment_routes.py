from datetime import date, datetime, time

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_backend.auth.context import SessionContext, ensure_can_access
from clinic_backend.auth.dependencies import get_session_context
from clinic_backend.routes.common import database_unavailable, ensure_database_ready, get_db, to_http_exception
from clinic_backend.routes.schedule_routes import DaySlotsResponse, to_day_slots_response
from clinic_backend.services import booking_service, records
from clinic_backend.services.booking_service import BookingDetails
from clinic_backend.scheduling.errors import SchedulingError
from clinic_backend.scheduling.states import AppointmentStatus

router = APIRouter(tags=['appointments'])

MAX_APPOINTMENT_REASON_LENGTH = 600


class BookingFields(BaseModel):
    # Optional so a missing selection is reported as a 400 by the service.
    day: date | None = None
    slot_time: time | None = None
    room_id: int | None = None
    reason: str | None = None

    @field_validator('slot_time')
    @classmethod
    def validate_time(cls, value: time | None) -> time | None:
        if value is None:
            return None
        if value.minute or value.second or value.microsecond:
            raise ValueError('Appointments start on the hour.')
        return value

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if len(normalized) > MAX_APPOINTMENT_REASON_LENGTH:
            raise ValueError(f'Reason must be {MAX_APPOINTMENT_REASON_LENGTH} characters or fewer.')

        return normalized

    def to_details(self) -> BookingDetails:
        return BookingDetails(day=self.day, slot_time=self.slot_time, room_id=self.room_id, reason=self.reason)


class CreateAppointmentRequest(BookingFields):
    provider_id: int
    patient_id: int | None = None


class CancelAppointmentRequest(BaseModel):
    no_show: bool = False


class AppointmentResponse(BaseModel):
    id: int
    provider_id: int
    patient_id: int
    room_id: int
    date: date
    time: time
    reason: str
    status: str
    reschedule_used: bool
    no_show: bool = False
    cancelled_by_role: str | None = None
    cancelled_at: datetime | None = None
    caused_by_block_id: str | None = None
    maintenance_batch_id: str | None = None

    class Config:
        from_attributes = True


def _run(db: Session, operation):
    try:
        return operation()
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('', response_model=list[AppointmentResponse])
def list_appointments(
    day: date | None = Query(default=None),
    provider_id: int | None = Query(default=None),
    status_filter: str | None = Query(default=None, alias='status'),
    context: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    return _run(db, lambda: booking_service.list_appointments_for(
        db, context, day=day, provider_id=provider_id, status=status_filter,
    ))


@router.get('/maintenance', response_model=list[AppointmentResponse])
def list_maintenance_appointments(
    provider_id: int | None = Query(default=None),
    context: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    """Appointments displaced by a block that still need rebooking."""
    ensure_database_ready()

    return _run(db, lambda: booking_service.list_appointments_for(
        db, context, provider_id=provider_id, status=AppointmentStatus.MAINTENANCE.value,
    ))


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    context: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    return _run(db, lambda: booking_service.create_appointment(
        db,
        context=context,
        provider_id=data.provider_id,
        patient_id=data.patient_id,
        details=data.to_details(),
    ))


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(
    appointment_id: int,
    context: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    def operation():
        appointment = records.get_appointment(db, appointment_id)
        ensure_can_access(context, appointment)
        return appointment

    return _run(db, operation)


@router.get('/{appointment_id}/slots', response_model=DaySlotsResponse)
def get_appointment_slots(
    appointment_id: int,
    day: date = Query(...),
    room_id: int | None = Query(default=None),
    context: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    """Slots for moving this appointment; the current booking stays listed."""
    ensure_database_ready()

    slots = _run(db, lambda: booking_service.compute_slots_for_appointment(
        db, appointment_id, day, context=context, room_id=room_id,
    ))
    return to_day_slots_response(slots)


@router.put('/{appointment_id}', response_model=AppointmentResponse)
def edit_appointment(
    appointment_id: int,
    data: BookingFields,
    context: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    return _run(db, lambda: booking_service.edit_appointment(
        db, appointment_id, context=context, details=data.to_details(),
    ))


@router.post('/{appointment_id}/reschedule', response_model=AppointmentResponse)
def reschedule_appointment(
    appointment_id: int,
    data: BookingFields,
    context: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    return _run(db, lambda: booking_service.reschedule_appointment(
        db, appointment_id, context=context, details=data.to_details(),
    ))


@router.post('/{appointment_id}/confirm', response_model=AppointmentResponse)
def confirm_appointment(
    appointment_id: int,
    context: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    return _run(db, lambda: booking_service.confirm_appointment(db, appointment_id, context=context))


@router.post('/{appointment_id}/complete', response_model=AppointmentResponse)
def complete_appointment(
    appointment_id: int,
    context: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    return _run(db, lambda: booking_service.complete_appointment(db, appointment_id, context=context))


@router.post('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    data: CancelAppointmentRequest,
    context: SessionContext = Depends(get_session_context),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    return _run(db, lambda: booking_service.cancel_appointment(
        db, appointment_id, context=context, no_show=data.no_show,
    ))
