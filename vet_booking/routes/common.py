from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from vet_booking.core.exceptions import BookingError
from vet_booking.database import SessionLocal, ensure_appointment_schema, ensure_schedule_schema

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and Postgres credentials.'


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_database_ready() -> None:
    try:
        ensure_schedule_schema()
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


def database_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )


def to_http_exception(exc: BookingError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail())
