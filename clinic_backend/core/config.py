import os
from datetime import datetime
from zoneinfo import ZoneInfo



def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")
DEBUG = _get_bool(os.getenv("DEBUG"), default=False)

CORS_ORIGINS = _get_list(os.getenv("CORS_ORIGINS"), ["http://localhost:5173"])

CLINIC_TIMEZONE = os.getenv("CLINIC_TIMEZONE", "America/Guayaquil")

# Booking rules
# Same-day lead time, per portal
PATIENT_LEAD_TIME_MINUTES = int(os.getenv("PATIENT_LEAD_TIME_MINUTES", "120"))
STAFF_LEAD_TIME_MINUTES = int(os.getenv("STAFF_LEAD_TIME_MINUTES", "0"))
AUTO_CONFIRM_HOURS = int(os.getenv("AUTO_CONFIRM_HOURS", "24"))
CONFIRM_WINDOW_FROM_HOURS = int(os.getenv("CONFIRM_WINDOW_FROM_HOURS", "24"))
CONFIRM_WINDOW_UNTIL_HOURS = int(os.getenv("CONFIRM_WINDOW_UNTIL_HOURS", "12"))
BOOKING_WINDOW_DAYS = int(os.getenv("BOOKING_WINDOW_DAYS", "365"))
MAX_ACTIVE_APPOINTMENTS_PER_PATIENT = int(os.getenv("MAX_ACTIVE_APPOINTMENTS_PER_PATIENT", "3"))
MAX_APPOINTMENTS_PER_PATIENT_PER_DAY = int(os.getenv("MAX_APPOINTMENTS_PER_PATIENT_PER_DAY", "1"))

RECOMPUTE_DEBOUNCE_SECONDS = float(os.getenv("RECOMPUTE_DEBOUNCE_SECONDS", "0.12"))
MAINTENANCE_APPLY_ATTEMPTS = int(os.getenv("MAINTENANCE_APPLY_ATTEMPTS", "2"))

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))


def clinic_now() -> datetime:
    """Current wall-clock time in the clinic timezone, as a naive datetime."""
    return datetime.now(ZoneInfo(CLINIC_TIMEZONE)).replace(tzinfo=None)


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if CONFIRM_WINDOW_UNTIL_HOURS > CONFIRM_WINDOW_FROM_HOURS:
        raise RuntimeError("CONFIRM_WINDOW_UNTIL_HOURS must not exceed CONFIRM_WINDOW_FROM_HOURS.")
