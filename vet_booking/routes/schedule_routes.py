from datetime import date, datetime, time, timedelta

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from pydantic import BaseModel, field_validator, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vet_booking.auth.dependencies import get_requestor_id
from vet_booking.core import config
from vet_booking.core.exceptions import BookingError
from vet_booking.models.schedule import ExceptionType, Weekday, WeeklySchedule
from vet_booking.routes.common import database_unavailable, ensure_database_ready, get_db, to_http_exception
from vet_booking.scheduling.availability import AvailabilityIndex
from vet_booking.scheduling.schedule_service import ScheduleService

router = APIRouter(tags=['schedules'])

MAX_EXCEPTION_RANGE_DAYS = 366
MAX_PREVIEW_DAYS = 90


def _validate_slot_duration(value: int | None) -> int | None:
    if value is not None and value not in config.ALLOWED_SLOT_DURATIONS:
        allowed = ', '.join(str(duration) for duration in config.ALLOWED_SLOT_DURATIONS)
        raise ValueError(f'Slot duration must be one of: {allowed} minutes.')
    return value


class DayScheduleRequest(BaseModel):
    is_working: bool
    start_time: time | None = None
    end_time: time | None = None
    break_start_time: time | None = None
    break_end_time: time | None = None
    slot_duration: int | None = None

    @field_validator('slot_duration')
    @classmethod
    def validate_slot_duration(cls, value: int | None) -> int | None:
        return _validate_slot_duration(value)


class WeeklyScheduleEntry(DayScheduleRequest):
    day_of_week: int

    @field_validator('day_of_week')
    @classmethod
    def validate_day_of_week(cls, value: int) -> int:
        if value not in {weekday.value for weekday in Weekday}:
            raise ValueError('Day of week must be between 0 (Sunday) and 6 (Saturday).')
        return value


class WeeklyScheduleRequest(BaseModel):
    days: list[WeeklyScheduleEntry]

    @model_validator(mode='after')
    def validate_unique_days(self) -> 'WeeklyScheduleRequest':
        seen = [entry.day_of_week for entry in self.days]
        if len(seen) != len(set(seen)):
            raise ValueError('Each day of week may appear only once.')
        return self


class DayScheduleResponse(BaseModel):
    day_of_week: int
    day_name: str
    is_working: bool
    start_time: time
    end_time: time
    break_start_time: time | None = None
    break_end_time: time | None = None
    slot_duration: int


class CreateExceptionRequest(BaseModel):
    exception_date: date
    exception_type: ExceptionType
    start_time: time | None = None
    end_time: time | None = None
    break_start_time: time | None = None
    break_end_time: time | None = None
    slot_duration: int | None = None
    notes: str | None = None

    @field_validator('slot_duration')
    @classmethod
    def validate_slot_duration(cls, value: int | None) -> int | None:
        return _validate_slot_duration(value)

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        return normalized or None


class ScheduleExceptionResponse(BaseModel):
    id: int
    exception_date: date
    exception_type: str
    start_time: time | None = None
    end_time: time | None = None
    break_start_time: time | None = None
    break_end_time: time | None = None
    slot_duration: int | None = None
    notes: str | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class BlockSlotRequest(BaseModel):
    slot_date: date
    start_time: time
    reason: str | None = None


class BlockedSlotResponse(BaseModel):
    id: int
    slot_date: date
    start_time: time
    reason: str | None = None

    class Config:
        from_attributes = True


class TimeSlotResponse(BaseModel):
    provider_id: str
    date: date
    start_time: time
    end_time: time
    is_available: bool
    is_booked: bool
    is_blocked: bool
    appointment_id: int | None = None

    class Config:
        from_attributes = True


class SlotCountResponse(BaseModel):
    date: date
    slot_count: int


def to_day_response(row: WeeklySchedule) -> DayScheduleResponse:
    return DayScheduleResponse(
        day_of_week=row.day_of_week,
        day_name=row.weekday.label,
        is_working=row.is_working,
        start_time=row.start_time,
        end_time=row.end_time,
        break_start_time=row.break_start_time,
        break_end_time=row.break_end_time,
        slot_duration=row.slot_duration,
    )


def _day_values(data: DayScheduleRequest) -> dict:
    return data.model_dump(exclude={'day_of_week'})


@router.post('/{provider_id}/initialize', response_model=list[DayScheduleResponse])
def initialize_schedule(
    provider_id: str,
    requestor_id: str = Depends(get_requestor_id),
    db: Session = Depends(get_db),
):
    if requestor_id != provider_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only the provider can initialize their schedule.',
        )

    ensure_database_ready()

    try:
        stored = ScheduleService(db).ensure_default_schedule(provider_id)
        return [to_day_response(stored[weekday]) for weekday in Weekday]
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/{provider_id}/weekly', response_model=list[DayScheduleResponse])
def get_weekly_schedule(provider_id: str, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        weekly = ScheduleService(db).get_weekly_schedule(provider_id)
        return [to_day_response(weekly[weekday]) for weekday in Weekday]
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.put('/{provider_id}/weekly', response_model=list[DayScheduleResponse])
def update_weekly_schedule(
    provider_id: str,
    data: WeeklyScheduleRequest,
    requestor_id: str = Depends(get_requestor_id),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        days = {Weekday(entry.day_of_week): _day_values(entry) for entry in data.days}
        weekly = ScheduleService(db).update_weekly_schedule(provider_id, requestor_id, days)
        return [to_day_response(weekly[weekday]) for weekday in Weekday]
    except BookingError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.put('/{provider_id}/weekly/{day_of_week}', response_model=DayScheduleResponse)
def update_day_schedule(
    provider_id: str,
    data: DayScheduleRequest,
    day_of_week: int = Path(..., ge=0, le=6),
    requestor_id: str = Depends(get_requestor_id),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        row = ScheduleService(db).update_day_schedule(
            provider_id,
            requestor_id,
            Weekday(day_of_week),
            **_day_values(data),
        )
        return to_day_response(row)
    except BookingError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/{provider_id}/exceptions', response_model=list[ScheduleExceptionResponse])
def list_exceptions(
    provider_id: str,
    start_date: date = Query(...),
    end_date: date = Query(...),
    db: Session = Depends(get_db),
):
    if (end_date - start_date).days > MAX_EXCEPTION_RANGE_DAYS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'Date range must be {MAX_EXCEPTION_RANGE_DAYS} days or fewer.',
        )

    ensure_database_ready()

    try:
        return ScheduleService(db).list_exceptions(provider_id, start_date, end_date)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post(
    '/{provider_id}/exceptions',
    response_model=ScheduleExceptionResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_exception(
    provider_id: str,
    data: CreateExceptionRequest,
    requestor_id: str = Depends(get_requestor_id),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return ScheduleService(db).add_exception(
            provider_id,
            requestor_id,
            data.exception_date,
            data.exception_type,
            start_time=data.start_time,
            end_time=data.end_time,
            break_start_time=data.break_start_time,
            break_end_time=data.break_end_time,
            slot_duration=data.slot_duration,
            notes=data.notes,
        )
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/{provider_id}/exceptions/{exception_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_exception(
    provider_id: str,
    exception_id: int,
    requestor_id: str = Depends(get_requestor_id),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        ScheduleService(db).delete_exception(provider_id, requestor_id, exception_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/{provider_id}/blocked-slots', response_model=list[BlockedSlotResponse])
def list_blocked_slots(
    provider_id: str,
    start_date: date | None = Query(default=None),
    days: int = Query(default=config.SLOT_REGENERATION_DAYS, ge=0, le=MAX_PREVIEW_DAYS),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        start_date = start_date or date.today()
        return ScheduleService(db).list_blocked_slots(provider_id, start_date, start_date + timedelta(days=days))
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post(
    '/{provider_id}/blocked-slots',
    response_model=BlockedSlotResponse,
    status_code=status.HTTP_201_CREATED,
)
def block_slot(
    provider_id: str,
    data: BlockSlotRequest,
    requestor_id: str = Depends(get_requestor_id),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return ScheduleService(db).block_slot(provider_id, requestor_id, data.slot_date, data.start_time, data.reason)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/{provider_id}/blocked-slots/{blocked_slot_id}', status_code=status.HTTP_204_NO_CONTENT)
def unblock_slot(
    provider_id: str,
    blocked_slot_id: int,
    requestor_id: str = Depends(get_requestor_id),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        ScheduleService(db).unblock_slot(provider_id, requestor_id, blocked_slot_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/{provider_id}/slots', response_model=list[TimeSlotResponse])
def list_day_slots(
    provider_id: str,
    slot_date: date = Query(..., alias='date'),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return AvailabilityIndex(db).list_slots(provider_id, slot_date)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/{provider_id}/preview', response_model=list[SlotCountResponse])
def preview_slots(
    provider_id: str,
    start_date: date | None = Query(default=None),
    days: int = Query(default=config.SLOT_REGENERATION_DAYS, ge=0, le=MAX_PREVIEW_DAYS),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        counts = ScheduleService(db).regenerate_slots(provider_id, start_date, days)
        return [SlotCountResponse(date=day, slot_count=count) for day, count in counts.items()]
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
