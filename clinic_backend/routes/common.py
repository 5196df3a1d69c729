from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from clinic_backend.database import SessionLocal, ensure_appointment_schema, ensure_block_schema
from clinic_backend.scheduling.errors import SchedulingError

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Please retry shortly or contact support.'


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_database_ready() -> None:
    try:
        ensure_appointment_schema()
        ensure_block_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


def to_http_exception(exc: SchedulingError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.detail)


def database_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )
