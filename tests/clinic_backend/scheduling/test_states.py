from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from clinic_backend.scheduling.errors import InvalidTransition
from clinic_backend.scheduling.states import (
    AppointmentStatus,
    apply_auto_confirm,
    can_transition,
    initial_status,
    transition,
)

NOW = datetime(2026, 3, 2, 10, 0)


@pytest.mark.parametrize(
    ('current', 'target'),
    [
        ('pending', 'confirmed'),
        ('pending', 'cancelled'),
        ('pending', 'maintenance'),
        ('confirmed', 'completed'),
        ('confirmed', 'cancelled'),
        ('confirmed', 'maintenance'),
        ('maintenance', 'pending'),
    ],
)
def test_enumerated_transitions_are_allowed(current: str, target: str) -> None:
    assert can_transition(current, target)


@pytest.mark.parametrize(
    ('current', 'target'),
    [
        ('pending', 'completed'),
        ('maintenance', 'confirmed'),
        ('maintenance', 'cancelled'),
        ('completed', 'cancelled'),
        ('cancelled', 'pending'),
        ('confirmed', 'pending'),
        ('booked', 'confirmed'),
    ],
)
def test_other_transitions_are_rejected(current: str, target: str) -> None:
    appointment = SimpleNamespace(status=current)

    assert not can_transition(current, target)
    with pytest.raises(InvalidTransition):
        transition(appointment, AppointmentStatus(target))
    assert appointment.status == current


@pytest.mark.parametrize(
    ('hours_ahead', 'expected'),
    [
        (23, AppointmentStatus.CONFIRMED),
        (25, AppointmentStatus.PENDING),
        (24, AppointmentStatus.PENDING),
        (1, AppointmentStatus.CONFIRMED),
    ],
)
def test_initial_status_auto_confirms_under_24_hours(hours_ahead: int, expected: AppointmentStatus) -> None:
    assert initial_status(NOW + timedelta(hours=hours_ahead), NOW) == expected


def test_apply_auto_confirm_rebooks_maintenance_appointment() -> None:
    appointment = SimpleNamespace(status='maintenance')

    apply_auto_confirm(appointment, NOW + timedelta(hours=48), NOW)

    assert appointment.status == 'pending'


def test_apply_auto_confirm_confirms_when_moved_close() -> None:
    appointment = SimpleNamespace(status='maintenance')

    apply_auto_confirm(appointment, NOW + timedelta(hours=5), NOW)

    assert appointment.status == 'confirmed'


def test_apply_auto_confirm_keeps_confirmed_appointment_confirmed() -> None:
    appointment = SimpleNamespace(status='confirmed')

    apply_auto_confirm(appointment, NOW + timedelta(hours=72), NOW)

    assert appointment.status == 'confirmed'
