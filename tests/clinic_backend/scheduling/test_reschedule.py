from datetime import date, time
from types import SimpleNamespace

import pytest

from clinic_backend.scheduling.errors import (
    BookingConflict,
    InvalidTransition,
    RescheduleAlreadyUsed,
    ValidationFailed,
)
from clinic_backend.scheduling.reschedule import (
    RescheduleRequest,
    apply_reschedule,
    ensure_reschedule_allowed,
    preserved_slot,
    validate_reschedule_target,
)
from clinic_backend.scheduling.slots import DaySlots, PreservedSlot, SlotOption

WEDNESDAY = date(2026, 3, 4)


def _appointment(**overrides) -> SimpleNamespace:
    fields = {
        'date': WEDNESDAY,
        'time': time(9, 0),
        'room_id': 1,
        'reason': 'Cleaning',
        'status': 'pending',
        'reschedule_used': False,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


def _slots(*options: tuple[int, int]) -> DaySlots:
    return DaySlots(
        date=WEDNESDAY,
        morning=[
            SlotOption(time=time(hour, 0), room_id=room_id, room_label=f'Room {room_id}', is_default=room_id == 1)
            for hour, room_id in options
        ],
    )


def test_preserved_slot_uses_current_booking() -> None:
    assert preserved_slot(_appointment(), 'Room 1') == PreservedSlot(WEDNESDAY, 540, 1, 'Room 1')


def test_reschedule_once_flips_flag_and_moves_triple() -> None:
    appointment = _appointment()
    request = RescheduleRequest(WEDNESDAY, time(10, 0), 1, ' Follow-up ')

    ensure_reschedule_allowed(appointment, by_patient=True)
    validate_reschedule_target(appointment, request, _slots((9, 1), (10, 1)))
    apply_reschedule(appointment, request)

    assert (appointment.date, appointment.time, appointment.room_id) == (WEDNESDAY, time(10, 0), 1)
    assert appointment.reason == 'Follow-up'
    assert appointment.reschedule_used is True


def test_second_reschedule_is_rejected_without_mutation() -> None:
    appointment = _appointment(time=time(10, 0), reschedule_used=True)

    with pytest.raises(RescheduleAlreadyUsed) as exception_info:
        ensure_reschedule_allowed(appointment)

    assert exception_info.value.detail == 'This appointment was already rescheduled once. Please contact the clinic.'
    assert appointment.time == time(10, 0)
    assert appointment.reschedule_used is True


@pytest.mark.parametrize('current_status', ['completed', 'cancelled', 'maintenance'])
def test_reschedule_requires_pending_or_confirmed(current_status: str) -> None:
    with pytest.raises(InvalidTransition):
        ensure_reschedule_allowed(_appointment(status=current_status))


def test_patient_cannot_reschedule_confirmed_appointment() -> None:
    appointment = _appointment(status='confirmed')

    ensure_reschedule_allowed(appointment)
    with pytest.raises(InvalidTransition):
        ensure_reschedule_allowed(appointment, by_patient=True)


def test_reschedule_to_same_triple_is_rejected() -> None:
    request = RescheduleRequest(WEDNESDAY, time(9, 0), 1, 'Cleaning')

    with pytest.raises(ValidationFailed):
        validate_reschedule_target(_appointment(), request, _slots((9, 1)))


def test_reschedule_requires_reason() -> None:
    request = RescheduleRequest(WEDNESDAY, time(10, 0), 1, '  ')

    with pytest.raises(ValidationFailed):
        validate_reschedule_target(_appointment(), request, _slots((10, 1)))


def test_reschedule_to_unoffered_slot_is_a_conflict() -> None:
    request = RescheduleRequest(WEDNESDAY, time(10, 0), 2, 'Cleaning')

    with pytest.raises(BookingConflict):
        validate_reschedule_target(_appointment(), request, _slots((10, 1)))


def test_reschedule_rejects_slots_for_another_date() -> None:
    request = RescheduleRequest(date(2026, 3, 5), time(10, 0), 1, 'Cleaning')

    with pytest.raises(ValidationFailed):
        validate_reschedule_target(_appointment(), request, _slots((10, 1)))
