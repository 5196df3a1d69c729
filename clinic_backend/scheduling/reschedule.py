"""One-shot reschedule guard around an appointment's (date, time, room)."""

from datetime import date, time
from typing import NamedTuple, Protocol

from clinic_backend.scheduling.errors import BookingConflict, InvalidTransition, RescheduleAlreadyUsed, ValidationFailed
from clinic_backend.scheduling.slots import DaySlots, PreservedSlot
from clinic_backend.scheduling.states import AppointmentStatus
from clinic_backend.scheduling.weekly import to_minutes

RESCHEDULABLE_STATUSES = frozenset({AppointmentStatus.PENDING.value, AppointmentStatus.CONFIRMED.value})


class ReschedulableAppointment(Protocol):
    date: date
    time: time
    room_id: int
    reason: str
    status: str
    reschedule_used: bool


class RescheduleRequest(NamedTuple):
    date: date
    time: time
    room_id: int
    reason: str


def ensure_reschedule_allowed(appointment: ReschedulableAppointment, *, by_patient: bool = False) -> None:
    """Raise before any lookup when the one-shot reschedule is not available."""
    if appointment.reschedule_used:
        raise RescheduleAlreadyUsed()
    if appointment.status not in RESCHEDULABLE_STATUSES:
        raise InvalidTransition(f"Appointments in status '{appointment.status}' cannot be rescheduled.")
    if by_patient and appointment.status == AppointmentStatus.CONFIRMED.value:
        raise InvalidTransition('Confirmed appointments can only be changed by contacting the clinic.')


def preserved_slot(appointment: ReschedulableAppointment, room_label: str | None = None) -> PreservedSlot:
    return PreservedSlot(appointment.date, to_minutes(appointment.time), appointment.room_id, room_label)


def validate_reschedule_target(
    appointment: ReschedulableAppointment,
    request: RescheduleRequest,
    day_slots: DaySlots,
) -> None:
    """``day_slots`` must be computed for ``request.date`` with the old booking preserved."""
    if not request.reason or not request.reason.strip():
        raise ValidationFailed('A reason is required.')
    if (request.date, request.time, request.room_id) == (appointment.date, appointment.time, appointment.room_id):
        raise ValidationFailed('Choose a different date, time or room to reschedule.')
    if day_slots.date != request.date:
        raise ValidationFailed('Available slots were computed for a different date.')
    if day_slots.find(to_minutes(request.time), request.room_id) is None:
        raise BookingConflict('The selected time is no longer available.')


def apply_reschedule(appointment: ReschedulableAppointment, request: RescheduleRequest) -> None:
    """Move the appointment and spend the reschedule. Caller validates first."""
    appointment.date = request.date
    appointment.time = request.time
    appointment.room_id = request.room_id
    appointment.reason = request.reason.strip()
    appointment.reschedule_used = True
