import os
from dotenv import load_dotenv
from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker


load_dotenv()
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clinic.db")

engine = create_engine(DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_appointment_schema_checked = False
_block_schema_checked = False


def ensure_appointment_schema() -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(engine)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
        migration_steps = [
            ('reschedule_used', 'ALTER TABLE appointments ADD COLUMN reschedule_used BOOLEAN NOT NULL DEFAULT FALSE'),
            ('no_show', 'ALTER TABLE appointments ADD COLUMN no_show BOOLEAN NOT NULL DEFAULT FALSE'),
            ('cancelled_by_role', 'ALTER TABLE appointments ADD COLUMN cancelled_by_role VARCHAR'),
            ('cancelled_at', 'ALTER TABLE appointments ADD COLUMN cancelled_at TIMESTAMP'),
            ('caused_by_block_id', 'ALTER TABLE appointments ADD COLUMN caused_by_block_id VARCHAR'),
            ('maintenance_batch_id', 'ALTER TABLE appointments ADD COLUMN maintenance_batch_id VARCHAR'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_provider_slot '
                    "ON appointments(provider_id, date, time) WHERE status <> 'cancelled'"
                )
            )
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_room_slot '
                    "ON appointments(room_id, date, time) WHERE status <> 'cancelled'"
                )
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_status_date ON appointments(status, date)')
            )

        _appointment_schema_checked = True


def ensure_block_schema() -> None:
    global _block_schema_checked

    if _block_schema_checked:
        return

    with _schema_lock:
        if _block_schema_checked:
            return

        inspector = inspect(engine)

        if 'schedule_blocks' not in inspector.get_table_names():
            _block_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('schedule_blocks')}
        migration_steps = [
            ('reason', 'ALTER TABLE schedule_blocks ADD COLUMN reason VARCHAR'),
            ('annual_recurring', 'ALTER TABLE schedule_blocks ADD COLUMN annual_recurring BOOLEAN NOT NULL DEFAULT FALSE'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_schedule_blocks_range ON schedule_blocks(date_from, date_to)')
            )

        _block_schema_checked = True
