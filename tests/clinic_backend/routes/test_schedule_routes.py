from datetime import date, datetime, time

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from clinic_backend.auth.context import AdminContext, PatientContext
from clinic_backend.core import config
from clinic_backend.routes.schedule_routes import (
    ScheduleEntryRequest,
    add_weekly_schedule_entry,
    deactivate_weekly_schedule_entry,
    get_clinic_calendar,
    get_provider_calendar,
    get_provider_slots,
)

NOW = datetime(2026, 3, 2, 10, 0)
TUESDAY = date(2026, 3, 3)

ADMIN = AdminContext(user_id=1)
PATIENT = PatientContext(user_id=3, patient_id=1)


@pytest.fixture(autouse=True)
def route_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, 'clinic_now', lambda: NOW)
    monkeypatch.setattr('clinic_backend.routes.schedule_routes.ensure_database_ready', lambda: None)


def test_provider_slots_are_split_by_period(clinic_db) -> None:
    response = get_provider_slots(provider_id=1, day=TUESDAY, room_id=None, context=PATIENT, db=clinic_db)

    assert [option.time for option in response.morning] == [time(8), time(9), time(10), time(11), time(12)]
    assert [option.time for option in response.afternoon] == [time(15), time(16), time(17)]
    assert response.blocked is False


def test_slots_for_unknown_provider_are_not_found(clinic_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_provider_slots(provider_id=99, day=TUESDAY, room_id=None, context=PATIENT, db=clinic_db)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Provider not found.'


def test_provider_calendar_reports_blocks(clinic_db, make_block) -> None:
    make_block('vacation', date(2026, 3, 16), date(2026, 3, 20), provider_id=1, reason='Vacation')

    response = get_provider_calendar(provider_id=1, year=2026, month=3, context=PATIENT, db=clinic_db)

    blocked = [day.date for day in response if day.blocked]
    assert blocked == [date(2026, 3, day) for day in range(16, 21)]
    assert {day.reason for day in response if day.blocked} == {'Vacation'}


def test_clinic_calendar_ignores_provider_blocks(clinic_db, make_block) -> None:
    make_block('vacation', date(2026, 3, 16), date(2026, 3, 20), provider_id=1, reason='Vacation')
    make_block('holiday', date(2026, 3, 23), date(2026, 3, 23), reason='Holiday')

    response = get_clinic_calendar(year=2026, month=3, context=ADMIN, db=clinic_db)

    assert [day.date for day in response if day.blocked] == [date(2026, 3, 23)]


def test_schedule_entry_request_rejects_invalid_weekday() -> None:
    with pytest.raises(ValidationError):
        ScheduleEntryRequest(day_of_week=7, start_time=time(9, 0), end_time=time(12, 0))


def test_weekly_entry_lifecycle(clinic_db) -> None:
    entry = add_weekly_schedule_entry(
        provider_id=1,
        data=ScheduleEntryRequest(day_of_week=5, start_time=time(9, 0), end_time=time(12, 0)),
        context=ADMIN,
        db=clinic_db,
    )
    assert entry.active is True

    deactivated = deactivate_weekly_schedule_entry(entry_id=entry.id, context=ADMIN, db=clinic_db)
    assert deactivated.active is False


def test_patients_cannot_add_weekly_entries(clinic_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        add_weekly_schedule_entry(
            provider_id=1,
            data=ScheduleEntryRequest(day_of_week=5, start_time=time(9, 0), end_time=time(12, 0)),
            context=PATIENT,
            db=clinic_db,
        )

    assert exception_info.value.status_code == 403
