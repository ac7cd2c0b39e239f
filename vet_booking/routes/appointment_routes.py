from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vet_booking.auth.dependencies import get_requestor_id
from vet_booking.core import config
from vet_booking.core.exceptions import BookingError
from vet_booking.routes.common import database_unavailable, ensure_database_ready, get_db, to_http_exception
from vet_booking.routes.schedule_routes import TimeSlotResponse
from vet_booking.scheduling.booking import AppointmentScope, BookingEngine
from vet_booking.scheduling.workflow import validate_booking_date

router = APIRouter(tags=['appointments'])


class AppointmentRole(str, Enum):
    OWNER = 'owner'
    PROVIDER = 'provider'


def _normalize_notes(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > config.MAX_APPOINTMENT_NOTES_LENGTH:
        raise ValueError(f'Notes must be {config.MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

    return normalized


class CreateAppointmentRequest(BaseModel):
    provider_id: str
    pet_id: str
    clinic_id: str | None = None
    date: date
    start_time: time
    end_time: time
    reason: str
    notes: str | None = None

    @field_validator('provider_id', 'pet_id')
    @classmethod
    def validate_required_id(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('This field is required.')
        return normalized

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Please provide a reason for the visit.')
        return normalized

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)


class RescheduleRequest(BaseModel):
    date: date
    start_time: time
    end_time: time
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        return _normalize_notes(value)


class CompleteAppointmentRequest(BaseModel):
    notes: str | None = None
    prescription: list[str] | None = None
    cost: Decimal | None = None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)

    @field_validator('cost')
    @classmethod
    def validate_cost(cls, value: Decimal | None) -> Decimal | None:
        if value is not None and value < 0:
            raise ValueError('Cost must not be negative.')
        return value


class AppointmentResponse(BaseModel):
    id: int
    pet_id: str
    owner_id: str
    provider_id: str
    clinic_id: str | None = None
    date: date
    start_time: time
    end_time: time
    reason: str
    notes: str | None = None
    status: str
    prescription: list[str] | None = None
    cost: Decimal | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


def _run(db: Session, operation):
    try:
        return operation(BookingEngine(db))
    except BookingError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    requestor_id: str = Depends(get_requestor_id),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    def book(engine: BookingEngine):
        validate_booking_date(data.date, date.today())
        return engine.book(
            provider_id=data.provider_id,
            day=data.date,
            start_time=data.start_time,
            end_time=data.end_time,
            pet_id=data.pet_id,
            owner_id=requestor_id,
            reason=data.reason,
            clinic_id=data.clinic_id,
            notes=data.notes,
        )

    return _run(db, book)


@router.get('', response_model=list[AppointmentResponse])
def list_appointments(
    role: AppointmentRole = Query(default=AppointmentRole.OWNER),
    scope: AppointmentScope = Query(default=AppointmentScope.ALL),
    requestor_id: str = Depends(get_requestor_id),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    if role is AppointmentRole.PROVIDER:
        return _run(db, lambda engine: engine.list_for_provider(requestor_id, scope))
    return _run(db, lambda engine: engine.list_for_owner(requestor_id, scope))


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(
    appointment_id: int,
    requestor_id: str = Depends(get_requestor_id),
    db: Session = Depends(get_db),
):
    ensure_database_ready()
    return _run(db, lambda engine: engine.get_appointment(appointment_id, requestor_id))


@router.get('/{appointment_id}/reschedule-options', response_model=list[TimeSlotResponse])
def list_reschedule_options(
    appointment_id: int,
    slot_date: date = Query(..., alias='date'),
    requestor_id: str = Depends(get_requestor_id),
    db: Session = Depends(get_db),
):
    """Free slots on ``date``, counting the appointment's own slot as free."""
    ensure_database_ready()

    def options(engine: BookingEngine):
        appointment = engine.get_appointment(appointment_id, requestor_id)
        slots = engine.availability.list_range(
            appointment.provider_id,
            slot_date,
            slot_date,
            exclude_appointment_id=appointment.id,
        )
        return [slot for slot in slots if slot.is_available]

    return _run(db, options)


@router.post('/{appointment_id}/reschedule', response_model=AppointmentResponse)
def reschedule_appointment(
    appointment_id: int,
    data: RescheduleRequest,
    requestor_id: str = Depends(get_requestor_id),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    def reschedule(engine: BookingEngine):
        validate_booking_date(data.date, date.today())
        return engine.reschedule(
            appointment_id,
            data.date,
            data.start_time,
            data.end_time,
            requestor_id,
            reason=data.reason,
        )

    return _run(db, reschedule)


@router.post('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    requestor_id: str = Depends(get_requestor_id),
    db: Session = Depends(get_db),
):
    ensure_database_ready()
    return _run(db, lambda engine: engine.cancel(appointment_id, requestor_id))


@router.post('/{appointment_id}/confirm', response_model=AppointmentResponse)
def confirm_appointment(
    appointment_id: int,
    requestor_id: str = Depends(get_requestor_id),
    db: Session = Depends(get_db),
):
    ensure_database_ready()
    return _run(db, lambda engine: engine.confirm(appointment_id, requestor_id))


@router.post('/{appointment_id}/start', response_model=AppointmentResponse)
def start_appointment(
    appointment_id: int,
    requestor_id: str = Depends(get_requestor_id),
    db: Session = Depends(get_db),
):
    ensure_database_ready()
    return _run(db, lambda engine: engine.start(appointment_id, requestor_id))


@router.post('/{appointment_id}/complete', response_model=AppointmentResponse)
def complete_appointment(
    appointment_id: int,
    data: CompleteAppointmentRequest,
    requestor_id: str = Depends(get_requestor_id),
    db: Session = Depends(get_db),
):
    ensure_database_ready()
    return _run(
        db,
        lambda engine: engine.complete(
            appointment_id,
            requestor_id,
            notes=data.notes,
            prescription=data.prescription,
            cost=data.cost,
        ),
    )
