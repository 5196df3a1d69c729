"""Appointment status lifecycle.

    pending -> confirmed -> completed
    pending | confirmed -> cancelled
    pending | confirmed -> maintenance -> pending

Anything else is rejected.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Protocol

from clinic_backend.scheduling.errors import InvalidTransition


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    MAINTENANCE = "maintenance"  # Displaced by a block, needs rebooking


ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset({
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.MAINTENANCE,
    }),
    AppointmentStatus.CONFIRMED: frozenset({
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.MAINTENANCE,
    }),
    AppointmentStatus.MAINTENANCE: frozenset({AppointmentStatus.PENDING}),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
}

# Statuses that still hold their provider and room slot.
ACTIVE_STATUSES = frozenset({
    AppointmentStatus.PENDING,
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.MAINTENANCE,
})


class HasStatus(Protocol):
    status: str


def can_transition(current: str, target: str) -> bool:
    try:
        return AppointmentStatus(target) in ALLOWED_TRANSITIONS[AppointmentStatus(current)]
    except ValueError:
        return False


def transition(appointment: HasStatus, target: AppointmentStatus) -> None:
    if not can_transition(appointment.status, target):
        raise InvalidTransition(
            f"Cannot change an appointment from '{appointment.status}' to '{target.value}'."
        )
    appointment.status = target.value


def is_within_auto_confirm(starts_at: datetime, now: datetime, auto_confirm_hours: int) -> bool:
    return starts_at - now < timedelta(hours=auto_confirm_hours)


def initial_status(starts_at: datetime, now: datetime, auto_confirm_hours: int = 24) -> AppointmentStatus:
    """New bookings less than ``auto_confirm_hours`` away start confirmed."""
    if is_within_auto_confirm(starts_at, now, auto_confirm_hours):
        return AppointmentStatus.CONFIRMED
    return AppointmentStatus.PENDING


def apply_auto_confirm(appointment: HasStatus, starts_at: datetime, now: datetime, auto_confirm_hours: int = 24) -> None:
    """Re-apply the auto-confirm rule after an edit moved the appointment."""
    if appointment.status == AppointmentStatus.MAINTENANCE.value:
        transition(appointment, AppointmentStatus.PENDING)
    if appointment.status == AppointmentStatus.PENDING.value and is_within_auto_confirm(
        starts_at, now, auto_confirm_hours
    ):
        transition(appointment, AppointmentStatus.CONFIRMED)
