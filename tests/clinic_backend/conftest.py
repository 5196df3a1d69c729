import os
from datetime import date, time

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from clinic_backend.database import Base  # noqa: E402
from clinic_backend.models.appointment import Appointment  # noqa: E402
from clinic_backend.models.block import ScheduleBlock  # noqa: E402
from clinic_backend.models.patient import Patient  # noqa: E402
from clinic_backend.models.provider import Provider  # noqa: E402
from clinic_backend.models.room import Room  # noqa: E402
from clinic_backend.models.schedule import WeeklyScheduleEntry  # noqa: E402
from clinic_backend.models.user import User  # noqa: E402
from clinic_backend.scheduling.cache import month_cache  # noqa: E402


@pytest.fixture(autouse=True)
def reset_month_cache():
    month_cache.invalidate()
    yield
    month_cache.invalidate()


@pytest.fixture
def clinic_db():
    """In-memory clinic: two rooms, two providers working Mon-Fri 08:00-18:00, two patients."""
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = testing_session_local()
    db.add_all([
        Room(id=1, label='Room 1', active=True),
        Room(id=2, label='Room 2', active=True),
    ])
    db.flush()
    db.add_all([
        Provider(id=1, full_name='Dr. Ana Vera', default_room_id=1, active=True),
        Provider(id=2, full_name='Dr. Luis Mora', default_room_id=2, active=True),
        Patient(id=1, full_name='Carla Ruiz', phone='0990000001'),
        Patient(id=2, full_name='Diego Paz', phone='0990000002'),
    ])
    db.flush()
    for provider_id in (1, 2):
        for day_of_week in range(5):
            db.add(
                WeeklyScheduleEntry(
                    provider_id=provider_id,
                    day_of_week=day_of_week,
                    start_time=time(8, 0),
                    end_time=time(18, 0),
                    active=True,
                )
            )
    db.add_all([
        User(id=1, email='admin@clinic.test', role='admin'),
        User(id=2, email='ana@clinic.test', role=None, provider_id=1),
        User(id=3, email='carla@clinic.test', role=None, patient_id=1),
    ])
    db.commit()

    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def make_appointment(clinic_db):
    def factory(day: date, hour: int, *, provider_id: int = 1, patient_id: int = 1, room_id: int = 1, **fields):
        appointment = Appointment(
            provider_id=provider_id,
            patient_id=patient_id,
            room_id=room_id,
            date=day,
            time=time(hour, 0),
            reason=fields.pop('reason', 'Checkup'),
            status=fields.pop('status', 'pending'),
            reschedule_used=fields.pop('reschedule_used', False),
            **fields,
        )
        clinic_db.add(appointment)
        clinic_db.commit()
        clinic_db.refresh(appointment)
        return appointment

    return factory


@pytest.fixture
def make_block(clinic_db):
    def factory(group_id: str, date_from: date, date_to: date, *, provider_id: int | None = None,
                reason: str | None = None, annual_recurring: bool = False):
        block = ScheduleBlock(
            group_id=group_id,
            provider_id=provider_id,
            date_from=date_from,
            date_to=date_to,
            reason=reason,
            annual_recurring=annual_recurring,
        )
        clinic_db.add(block)
        clinic_db.commit()
        return block

    return factory
