"""System-of-record access for the scheduling engine.

These are the only queries the engine trusts for booking decisions:
``get_free_times`` is the authoritative double-booking check, and
``commit_booking`` turns the unique slot indexes into ``BookingConflict``.
"""

import logging
from collections import Counter
from datetime import date
from typing import Iterable

from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clinic_backend.models.appointment import Appointment
from clinic_backend.models.block import ScheduleBlock
from clinic_backend.models.patient import Patient
from clinic_backend.models.provider import Provider
from clinic_backend.models.room import Room
from clinic_backend.models.schedule import WeeklyScheduleEntry
from clinic_backend.scheduling.errors import BookingConflict, NotFound
from clinic_backend.scheduling.slots import SLOT_MINUTES
from clinic_backend.scheduling.states import AppointmentStatus
from clinic_backend.scheduling.weekly import MINUTES_PER_DAY, to_minutes

logger = logging.getLogger(__name__)

HOURLY_GRID = tuple(range(0, MINUTES_PER_DAY, SLOT_MINUTES))


def get_provider(db: Session, provider_id: int) -> Provider:
    provider = db.get(Provider, provider_id)
    if provider is None:
        raise NotFound('Provider not found.')
    return provider


def get_patient(db: Session, patient_id: int) -> Patient:
    patient = db.get(Patient, patient_id)
    if patient is None:
        raise NotFound('Patient not found.')
    return patient


def get_room(db: Session, room_id: int) -> Room:
    room = db.get(Room, room_id)
    if room is None:
        raise NotFound('Room not found.')
    return room


def list_rooms(db: Session, active_only: bool = True) -> list[Room]:
    query = db.query(Room)
    if active_only:
        query = query.filter(Room.active.is_(True))
    return query.order_by(Room.id.asc()).all()


def get_active_schedule(db: Session, provider_id: int) -> list[WeeklyScheduleEntry]:
    return db.query(WeeklyScheduleEntry).filter(
        WeeklyScheduleEntry.provider_id == provider_id,
        WeeklyScheduleEntry.active.is_(True),
    ).order_by(WeeklyScheduleEntry.day_of_week, WeeklyScheduleEntry.start_time).all()


def get_blocks_in_range(
    db: Session,
    start: date,
    end: date,
    provider_id: int | None = None,
    include_global: bool = True,
) -> list[ScheduleBlock]:
    """Blocks that may touch ``[start, end]``; annual blocks are always returned."""
    query = db.query(ScheduleBlock).filter(
        or_(
            ScheduleBlock.annual_recurring.is_(True),
            and_(ScheduleBlock.date_from <= end, ScheduleBlock.date_to >= start),
        )
    )

    scopes = []
    if include_global:
        scopes.append(ScheduleBlock.provider_id.is_(None))
    if provider_id is not None:
        scopes.append(ScheduleBlock.provider_id == provider_id)
    if not scopes:
        return []

    return query.filter(or_(*scopes)).order_by(ScheduleBlock.date_from.asc()).all()


def get_block(db: Session, group_id: str) -> ScheduleBlock:
    block = db.get(ScheduleBlock, group_id)
    if block is None:
        raise NotFound('Block not found.')
    return block


def get_appointment(db: Session, appointment_id: int) -> Appointment:
    appointment = db.get(Appointment, appointment_id)
    if appointment is None:
        raise NotFound('Appointment not found.')
    return appointment


def list_appointments(
    db: Session,
    *,
    provider_id: int | None = None,
    patient_id: int | None = None,
    room_id: int | None = None,
    day: date | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    statuses: Iterable[str] | None = None,
) -> list[Appointment]:
    query = db.query(Appointment)
    if provider_id is not None:
        query = query.filter(Appointment.provider_id == provider_id)
    if patient_id is not None:
        query = query.filter(Appointment.patient_id == patient_id)
    if room_id is not None:
        query = query.filter(Appointment.room_id == room_id)
    if day is not None:
        query = query.filter(Appointment.date == day)
    if date_from is not None:
        query = query.filter(Appointment.date >= date_from)
    if date_to is not None:
        query = query.filter(Appointment.date <= date_to)
    if statuses is not None:
        query = query.filter(Appointment.status.in_(list(statuses)))

    return query.order_by(Appointment.date.asc(), Appointment.time.asc(), Appointment.id.asc()).all()


def taken_minutes(
    db: Session,
    provider_id: int,
    day: date,
    room_id: int,
    exclude_appointment_id: int | None = None,
) -> list[int]:
    """Start minutes of non-cancelled appointments holding the provider or the room."""
    query = db.query(Appointment.time).filter(
        Appointment.date == day,
        Appointment.status != AppointmentStatus.CANCELLED.value,
        or_(Appointment.provider_id == provider_id, Appointment.room_id == room_id),
    )
    if exclude_appointment_id is not None:
        query = query.filter(Appointment.id != exclude_appointment_id)

    return [to_minutes(row.time) for row in query.all()]


def get_free_times(
    db: Session,
    provider_id: int,
    day: date,
    room_id: int,
    exclude_appointment_id: int | None = None,
    candidates: Iterable[int] | None = None,
) -> set[int]:
    """Candidate starts whose hour overlaps no booking of this provider or room."""
    taken = taken_minutes(db, provider_id, day, room_id, exclude_appointment_id)
    candidates = HOURLY_GRID if candidates is None else candidates
    return {
        minutes for minutes in candidates
        if all(abs(minutes - booked) >= SLOT_MINUTES for booked in taken)
    }


def count_appointments_by_day(
    db: Session,
    start: date,
    end: date,
    provider_id: int | None = None,
) -> dict[date, int]:
    query = db.query(Appointment.date).filter(
        Appointment.date >= start,
        Appointment.date <= end,
        Appointment.status != AppointmentStatus.CANCELLED.value,
    )
    if provider_id is not None:
        query = query.filter(Appointment.provider_id == provider_id)

    return dict(Counter(row.date for row in query.all()))


def commit_booking(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        message = str(exc.orig) if exc.orig is not None else str(exc)
        logger.info('Booking rejected by unique slot index: %s', message)
        if 'room' in message:
            raise BookingConflict('This room is already booked at the selected time.') from exc
        raise BookingConflict('The provider is already booked at the selected time.') from exc
