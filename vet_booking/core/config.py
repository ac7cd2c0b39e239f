import os

from dotenv import load_dotenv


load_dotenv()


def _get_int_list(value: str | None, default: tuple[int, ...]) -> tuple[int, ...]:
    if not value:
        return default
    return tuple(int(part) for part in value.split(",") if part.strip())

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./vet_booking.db")
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:8081,http://localhost:19006").split(",")
    if origin.strip()
]

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

# Scheduling
SLOT_REGENERATION_DAYS = int(os.getenv("SLOT_REGENERATION_DAYS", "30"))
BOOKING_WINDOW_DAYS = int(os.getenv("BOOKING_WINDOW_DAYS", "14"))
ALLOWED_SLOT_DURATIONS = _get_int_list(os.getenv("ALLOWED_SLOT_DURATIONS"), default=(15, 20, 30, 45, 60))
DEFAULT_SLOT_DURATION = int(os.getenv("DEFAULT_SLOT_DURATION", "30"))
DEFAULT_START_TIME = os.getenv("DEFAULT_START_TIME", "08:00")
DEFAULT_END_TIME = os.getenv("DEFAULT_END_TIME", "17:00")
MAX_APPOINTMENT_NOTES_LENGTH = int(os.getenv("MAX_APPOINTMENT_NOTES_LENGTH", "600"))
MAX_REASON_LENGTH = int(os.getenv("MAX_REASON_LENGTH", "500"))


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if DEFAULT_SLOT_DURATION not in ALLOWED_SLOT_DURATIONS:
        raise RuntimeError("DEFAULT_SLOT_DURATION must be one of ALLOWED_SLOT_DURATIONS.")
