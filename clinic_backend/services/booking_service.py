"""Booking service - the scheduling engine bound to the system of record.

Handles:
- Slot computation for (provider, day[, room]) with the reschedule preserve
- Month calendar (blocked days, working days, appointment counts)
- Create / staff edit with the auto-confirm rule
- One-shot patient reschedule
- Confirm, complete and cancel transitions
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import NamedTuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_backend.auth.context import (
    PatientContext,
    ProviderContext,
    SessionContext,
    ensure_can_access,
    is_staff,
)
from clinic_backend.core import config
from clinic_backend.models.appointment import Appointment
from clinic_backend.services import records
from clinic_backend.scheduling.blocks import DayBlock, each_day, month_bounds, resolve_block_calendar
from clinic_backend.scheduling.cache import CacheKey, month_cache, provider_scope_key
from clinic_backend.scheduling.errors import (
    AccessDenied,
    BookingConflict,
    InvalidTransition,
    PartialData,
    PolicyViolation,
    ValidationFailed,
)
from clinic_backend.scheduling.reschedule import (
    RescheduleRequest,
    apply_reschedule,
    ensure_reschedule_allowed,
    preserved_slot,
    validate_reschedule_target,
)
from clinic_backend.scheduling.slots import DaySlots, PreservedSlot, generate_day_slots, structural_slots
from clinic_backend.scheduling.states import (
    ACTIVE_STATUSES,
    AppointmentStatus,
    apply_auto_confirm,
    initial_status,
    transition,
)
from clinic_backend.scheduling.weekly import open_intervals, to_minutes, working_weekdays

logger = logging.getLogger(__name__)

UNAVAILABLE_REASON = 'Calendar data is temporarily unavailable.'


class CalendarDay(NamedTuple):
    date: date
    blocked: bool
    reason: str | None
    working_day: bool
    total_appointments: int


class BookingDetails(NamedTuple):
    day: date | None
    slot_time: time | None
    room_id: int | None
    reason: str | None


# =============================================================================
# Calendar lookups (cached per month and scope)
# =============================================================================

def get_month_blocks(db: Session, provider_id: int | None, year: int, month: int) -> dict[date, DayBlock]:
    key = CacheKey('blocks', provider_scope_key(provider_id), year, month)

    def compute() -> dict[date, DayBlock]:
        start, end = month_bounds(year, month)
        blocks = records.get_blocks_in_range(db, start, end, provider_id=provider_id)
        return resolve_block_calendar(blocks, start, end, provider_id=provider_id)

    return month_cache.get_or_compute(key, compute)


def get_month_open_days(db: Session, provider_id: int, year: int, month: int) -> set[date]:
    key = CacheKey('open_days', provider_scope_key(provider_id), year, month)

    def compute() -> set[date]:
        weekdays = working_weekdays(records.get_active_schedule(db, provider_id))
        start, end = month_bounds(year, month)
        return {day for day in each_day(start, end) if day.weekday() in weekdays}

    return month_cache.get_or_compute(key, compute)


def invalidate_provider(provider_id: int | None) -> None:
    month_cache.invalidate(provider_scope_key(provider_id))


def get_month_calendar(db: Session, provider_id: int | None, year: int, month: int) -> list[CalendarDay]:
    start, end = month_bounds(year, month)
    try:
        blocks = get_month_blocks(db, provider_id, year, month)
        open_days = get_month_open_days(db, provider_id, year, month) if provider_id is not None else None
    except SQLAlchemyError:
        db.rollback()
        logger.warning(
            'Calendar lookup failed for provider=%s %s-%02d; reporting the month as blocked',
            provider_id, year, month, exc_info=True,
        )
        return [CalendarDay(day, True, UNAVAILABLE_REASON, False, 0) for day in each_day(start, end)]

    counts = records.count_appointments_by_day(db, start, end, provider_id=provider_id)
    calendar = []
    for day in each_day(start, end):
        day_block = blocks.get(day)
        calendar.append(
            CalendarDay(
                date=day,
                blocked=day_block is not None,
                reason=day_block.reason if day_block else None,
                working_day=True if open_days is None else day in open_days,
                total_appointments=counts.get(day, 0),
            )
        )
    return calendar


# =============================================================================
# Slot computation
# =============================================================================

def within_booking_window(day: date, now: datetime) -> bool:
    today = now.date()
    return today <= day <= today + timedelta(days=config.BOOKING_WINDOW_DAYS)


def lead_time_for(context: SessionContext | None) -> int:
    if isinstance(context, PatientContext):
        return config.PATIENT_LEAD_TIME_MINUTES
    return config.STAFF_LEAD_TIME_MINUTES


def compute_day_slots(
    db: Session,
    provider_id: int,
    target_date: date,
    *,
    room_id: int | None = None,
    preserve: PreservedSlot | None = None,
    exclude_appointment_id: int | None = None,
    lead_time_minutes: int | None = None,
    now: datetime | None = None,
) -> DaySlots:
    """Bookable (time, room) options for one provider and day.

    Advisory only: the commit path re-validates through the unique indexes.
    """
    now = now or config.clinic_now()
    provider = records.get_provider(db, provider_id)
    if room_id is not None:
        records.get_room(db, room_id)

    preserving = preserve is not None and preserve.date == target_date
    if not preserving and not within_booking_window(target_date, now):
        return DaySlots(date=target_date)

    try:
        entries = records.get_active_schedule(db, provider_id)
        day_block = get_month_blocks(db, provider_id, target_date.year, target_date.month).get(target_date)
    except SQLAlchemyError:
        db.rollback()
        logger.warning(
            'Schedule lookup failed for provider=%s on %s; offering no slots',
            provider_id, target_date, exc_info=True,
        )
        return DaySlots(date=target_date, unavailable=True)

    intervals = open_intervals(entries, target_date)
    rooms = records.list_rooms(db)

    candidates = set(structural_slots(intervals))
    room_ids = {room_id} if room_id is not None else {room.id for room in rooms}
    if preserving:
        candidates.add(preserve.minutes)
        room_ids.add(preserve.room_id)

    free_by_room = {
        candidate_room: records.get_free_times(
            db,
            provider_id,
            target_date,
            candidate_room,
            exclude_appointment_id=exclude_appointment_id,
            candidates=candidates,
        )
        for candidate_room in room_ids
    }

    return generate_day_slots(
        target_date=target_date,
        intervals=intervals,
        rooms=rooms,
        free_by_room=free_by_room,
        now=now,
        default_room_id=provider.default_room_id,
        room_id=room_id,
        day_block=day_block,
        lead_time_minutes=config.STAFF_LEAD_TIME_MINUTES if lead_time_minutes is None else lead_time_minutes,
        preserve=preserve if preserving else None,
    )


def _preserve_for(db: Session, appointment: Appointment) -> PreservedSlot | None:
    if appointment.status == AppointmentStatus.MAINTENANCE.value:
        return None
    room = records.get_room(db, appointment.room_id)
    return preserved_slot(appointment, room.label)


def compute_slots_for_appointment(
    db: Session,
    appointment_id: int,
    target_date: date,
    *,
    context: SessionContext,
    room_id: int | None = None,
    now: datetime | None = None,
) -> DaySlots:
    """Slots for moving an existing appointment; its current booking stays selectable."""
    appointment = records.get_appointment(db, appointment_id)
    ensure_can_access(context, appointment)
    return compute_day_slots(
        db,
        appointment.provider_id,
        target_date,
        room_id=room_id,
        preserve=_preserve_for(db, appointment),
        exclude_appointment_id=appointment.id,
        lead_time_minutes=lead_time_for(context),
        now=now,
    )


# =============================================================================
# Create / edit / reschedule
# =============================================================================

def _require_booking_details(details: BookingDetails) -> str:
    if details.day is None:
        raise ValidationFailed('A date is required.')
    if details.slot_time is None:
        raise ValidationFailed('A time is required.')
    if details.room_id is None:
        raise ValidationFailed('A room is required.')
    reason = (details.reason or '').strip()
    if not reason:
        raise ValidationFailed('A reason is required.')
    return reason


def _ensure_bookable(slots: DaySlots, details: BookingDetails) -> None:
    if slots.unavailable:
        raise PartialData('Schedule data is unavailable for this date. Please retry.')
    if slots.find(to_minutes(details.slot_time), details.room_id) is None:
        raise BookingConflict('The selected time is no longer available.')


def _ensure_patient_limits(db: Session, patient_id: int, day: date, now: datetime) -> None:
    active = [
        appointment for appointment in records.list_appointments(
            db,
            patient_id=patient_id,
            date_from=now.date(),
            statuses=[status.value for status in ACTIVE_STATUSES],
        )
        if datetime.combine(appointment.date, appointment.time) >= now
    ]
    if len(active) >= config.MAX_ACTIVE_APPOINTMENTS_PER_PATIENT:
        raise PolicyViolation(
            f'Patients can hold at most {config.MAX_ACTIVE_APPOINTMENTS_PER_PATIENT} upcoming appointments.'
        )
    same_day = [appointment for appointment in active if appointment.date == day]
    if len(same_day) >= config.MAX_APPOINTMENTS_PER_PATIENT_PER_DAY:
        raise PolicyViolation('You already have an appointment on this date.')


def create_appointment(
    db: Session,
    *,
    context: SessionContext,
    provider_id: int,
    patient_id: int | None,
    details: BookingDetails,
    now: datetime | None = None,
) -> Appointment:
    reason = _require_booking_details(details)

    if isinstance(context, PatientContext):
        if patient_id is not None and patient_id != context.patient_id:
            raise AccessDenied('Patients can only book for themselves.')
        patient_id = context.patient_id
    elif patient_id is None:
        raise ValidationFailed('A patient is required.')
    if isinstance(context, ProviderContext) and provider_id != context.provider_id:
        raise AccessDenied('Providers can only book into their own agenda.')

    now = now or config.clinic_now()
    if not within_booking_window(details.day, now):
        raise ValidationFailed(
            f'Appointments must be booked between today and {config.BOOKING_WINDOW_DAYS} days ahead.'
        )

    records.get_patient(db, patient_id)
    if isinstance(context, PatientContext):
        _ensure_patient_limits(db, patient_id, details.day, now)

    slots = compute_day_slots(
        db, provider_id, details.day, room_id=details.room_id, lead_time_minutes=lead_time_for(context), now=now,
    )
    _ensure_bookable(slots, details)

    starts_at = datetime.combine(details.day, details.slot_time)
    appointment = Appointment(
        provider_id=provider_id,
        patient_id=patient_id,
        room_id=details.room_id,
        date=details.day,
        time=details.slot_time,
        reason=reason,
        status=initial_status(starts_at, now, config.AUTO_CONFIRM_HOURS).value,
        reschedule_used=False,
    )
    db.add(appointment)
    records.commit_booking(db)
    db.refresh(appointment)

    logger.info(
        'Created appointment %s provider=%s room=%s at %s status=%s',
        appointment.id, provider_id, details.room_id, starts_at, appointment.status,
    )
    return appointment


def edit_appointment(
    db: Session,
    appointment_id: int,
    *,
    context: SessionContext,
    details: BookingDetails,
    now: datetime | None = None,
) -> Appointment:
    """Staff edit of date, time, room and reason. Does not spend the patient reschedule."""
    reason = _require_booking_details(details)
    if not is_staff(context):
        raise AccessDenied('Patients change appointments through reschedule.')

    appointment = records.get_appointment(db, appointment_id)
    ensure_can_access(context, appointment)
    if appointment.status not in {status.value for status in ACTIVE_STATUSES}:
        raise InvalidTransition(f"Appointments in status '{appointment.status}' cannot be edited.")

    now = now or config.clinic_now()
    preserve = _preserve_for(db, appointment)
    if preserve is None or preserve.date != details.day:
        if not within_booking_window(details.day, now):
            raise ValidationFailed(
                f'Appointments must be booked between today and {config.BOOKING_WINDOW_DAYS} days ahead.'
            )

    slots = compute_day_slots(
        db,
        appointment.provider_id,
        details.day,
        room_id=details.room_id,
        preserve=preserve,
        exclude_appointment_id=appointment.id,
        lead_time_minutes=lead_time_for(context),
        now=now,
    )
    _ensure_bookable(slots, details)

    was_maintenance = appointment.status == AppointmentStatus.MAINTENANCE.value
    appointment.date = details.day
    appointment.time = details.slot_time
    appointment.room_id = details.room_id
    appointment.reason = reason
    apply_auto_confirm(
        appointment,
        datetime.combine(details.day, details.slot_time),
        now,
        config.AUTO_CONFIRM_HOURS,
    )
    if was_maintenance:
        appointment.caused_by_block_id = None
        appointment.maintenance_batch_id = None

    records.commit_booking(db)
    db.refresh(appointment)
    logger.info('Edited appointment %s -> %s %s room=%s', appointment.id, appointment.date, appointment.time, appointment.room_id)
    return appointment


def reschedule_appointment(
    db: Session,
    appointment_id: int,
    *,
    context: SessionContext,
    details: BookingDetails,
    now: datetime | None = None,
) -> Appointment:
    appointment = records.get_appointment(db, appointment_id)
    ensure_can_access(context, appointment)
    ensure_reschedule_allowed(appointment, by_patient=isinstance(context, PatientContext))
    _require_booking_details(details)

    now = now or config.clinic_now()
    request = RescheduleRequest(details.day, details.slot_time, details.room_id, details.reason)
    if details.day != appointment.date and not within_booking_window(details.day, now):
        raise ValidationFailed(
            f'Appointments must be booked between today and {config.BOOKING_WINDOW_DAYS} days ahead.'
        )

    slots = compute_day_slots(
        db,
        appointment.provider_id,
        details.day,
        room_id=details.room_id,
        preserve=_preserve_for(db, appointment),
        exclude_appointment_id=appointment.id,
        lead_time_minutes=lead_time_for(context),
        now=now,
    )
    if slots.unavailable:
        raise PartialData('Schedule data is unavailable for this date. Please retry.')
    validate_reschedule_target(appointment, request, slots)

    apply_reschedule(appointment, request)
    apply_auto_confirm(
        appointment,
        datetime.combine(details.day, details.slot_time),
        now,
        config.AUTO_CONFIRM_HOURS,
    )
    records.commit_booking(db)
    db.refresh(appointment)
    logger.info('Rescheduled appointment %s -> %s %s room=%s', appointment.id, appointment.date, appointment.time, appointment.room_id)
    return appointment


# =============================================================================
# Status changes
# =============================================================================

def confirm_appointment(
    db: Session,
    appointment_id: int,
    *,
    context: SessionContext,
    now: datetime | None = None,
) -> Appointment:
    appointment = records.get_appointment(db, appointment_id)
    ensure_can_access(context, appointment)

    if isinstance(context, PatientContext):
        now = now or config.clinic_now()
        hours_left = (datetime.combine(appointment.date, appointment.time) - now).total_seconds() / 3600
        if hours_left > config.CONFIRM_WINDOW_FROM_HOURS:
            raise PolicyViolation(
                f'Confirmation opens {config.CONFIRM_WINDOW_FROM_HOURS} hours before the appointment.'
            )
        if hours_left < config.CONFIRM_WINDOW_UNTIL_HOURS:
            raise PolicyViolation('The confirmation window has closed. Please contact the clinic.')

    transition(appointment, AppointmentStatus.CONFIRMED)
    db.commit()
    db.refresh(appointment)
    return appointment


def complete_appointment(db: Session, appointment_id: int, *, context: SessionContext) -> Appointment:
    if not is_staff(context):
        raise AccessDenied('Only clinic staff can complete appointments.')
    appointment = records.get_appointment(db, appointment_id)
    ensure_can_access(context, appointment)

    transition(appointment, AppointmentStatus.COMPLETED)
    db.commit()
    db.refresh(appointment)
    return appointment


def cancel_appointment(
    db: Session,
    appointment_id: int,
    *,
    context: SessionContext,
    no_show: bool = False,
    now: datetime | None = None,
) -> Appointment:
    if no_show and not isinstance(context, ProviderContext):
        raise AccessDenied('Only the attending provider can record a no-show.')

    appointment = records.get_appointment(db, appointment_id)
    ensure_can_access(context, appointment)

    transition(appointment, AppointmentStatus.CANCELLED)
    appointment.no_show = no_show
    appointment.cancelled_by_role = context.role
    appointment.cancelled_at = now or config.clinic_now()
    db.commit()
    db.refresh(appointment)
    logger.info('Cancelled appointment %s by %s (no_show=%s)', appointment.id, context.role, no_show)
    return appointment


def list_appointments_for(
    db: Session,
    context: SessionContext,
    *,
    day: date | None = None,
    provider_id: int | None = None,
    status: str | None = None,
) -> list[Appointment]:
    patient_id = None
    if isinstance(context, PatientContext):
        patient_id = context.patient_id
    elif isinstance(context, ProviderContext):
        provider_id = context.provider_id

    return records.list_appointments(
        db,
        provider_id=provider_id,
        patient_id=patient_id,
        day=day,
        statuses=[status] if status else None,
    )
