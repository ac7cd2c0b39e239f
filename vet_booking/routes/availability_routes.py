from datetime import date, time, timedelta

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vet_booking.core import config
from vet_booking.core.exceptions import BookingError
from vet_booking.routes.common import database_unavailable, ensure_database_ready, get_db, to_http_exception
from vet_booking.routes.schedule_routes import TimeSlotResponse
from vet_booking.scheduling.availability import AvailabilityIndex

router = APIRouter(tags=['availability'])


class AvailabilityCheckResponse(BaseModel):
    provider_id: str
    date: date
    start_time: time
    end_time: time
    is_available: bool


@router.get('/{provider_id}', response_model=list[TimeSlotResponse])
def list_available_slots(
    provider_id: str,
    slot_date: date = Query(..., alias='date'),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return AvailabilityIndex(db).list_available(provider_id, slot_date)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/{provider_id}/check', response_model=AvailabilityCheckResponse)
def check_availability(
    provider_id: str,
    slot_date: date = Query(..., alias='date'),
    start_time: time = Query(...),
    end_time: time = Query(...),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        is_available = AvailabilityIndex(db).is_available(provider_id, slot_date, start_time, end_time)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return AvailabilityCheckResponse(
        provider_id=provider_id,
        date=slot_date,
        start_time=start_time,
        end_time=end_time,
        is_available=is_available,
    )


@router.get('/{provider_id}/dates', response_model=list[date])
def list_bookable_dates(
    provider_id: str,
    days: int = Query(default=config.BOOKING_WINDOW_DAYS, ge=1, le=config.BOOKING_WINDOW_DAYS),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        today = date.today()
        return AvailabilityIndex(db).available_dates(
            provider_id,
            today + timedelta(days=1),
            today + timedelta(days=days),
        )
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
