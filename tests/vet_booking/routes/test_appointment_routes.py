from datetime import date, time, timedelta
from decimal import Decimal

import pytest
from fastapi import HTTPException
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from conftest import OTHER_OWNER_ID, OWNER_ID, PROVIDER_ID, set_weekday
from vet_booking.models.appointment import AppointmentStatus
from vet_booking.models.schedule import Weekday
from vet_booking.routes.appointment_routes import (
    AppointmentRole,
    CompleteAppointmentRequest,
    CreateAppointmentRequest,
    RescheduleRequest,
    cancel_appointment,
    complete_appointment,
    confirm_appointment,
    create_appointment,
    get_appointment,
    list_appointments,
    list_reschedule_options,
    reschedule_appointment,
    start_appointment,
)
from vet_booking.scheduling.booking import AppointmentScope

TOMORROW = date.today() + timedelta(days=1)


@pytest.fixture
def appointment_db(db, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr('vet_booking.routes.appointment_routes.ensure_database_ready', lambda: None)
    # Every day is a working day so dates relative to today always have slots.
    for weekday in Weekday:
        set_weekday(db, weekday)
    return db


def _request(start: time = time(9, 0), end: time = time(9, 30), day: date = TOMORROW, **overrides):
    values = {
        'provider_id': PROVIDER_ID,
        'pet_id': 'pet-1',
        'date': day,
        'start_time': start,
        'end_time': end,
        'reason': 'Vaccination',
    }
    values.update(overrides)
    return CreateAppointmentRequest(**values)


def _create(db, requestor_id: str = OWNER_ID, **overrides):
    return create_appointment(data=_request(**overrides), requestor_id=requestor_id, db=db)


def test_create_appointment_request_normalizes_fields() -> None:
    request = _request(provider_id=' vet-1 ', reason='  Vaccination ', notes='   ')

    assert request.provider_id == 'vet-1'
    assert request.reason == 'Vaccination'
    assert request.notes is None


@pytest.mark.parametrize(
    'overrides',
    [
        {'reason': '   '},
        {'pet_id': ''},
        {'notes': 'x' * 601},
    ],
)
def test_create_appointment_request_rejects_invalid_fields(overrides) -> None:
    with pytest.raises(ValidationError):
        _request(**overrides)


def test_reschedule_request_limits_reason_length() -> None:
    with pytest.raises(ValidationError):
        RescheduleRequest(date=TOMORROW, start_time=time(9, 0), end_time=time(9, 30), reason='x' * 5000)

    blank = RescheduleRequest(date=TOMORROW, start_time=time(9, 0), end_time=time(9, 30), reason='   ')
    assert blank.reason is None


def test_reschedule_reports_overlong_notes(appointment_db) -> None:
    appointment = _create(appointment_db, notes='n' * 590)

    with pytest.raises(HTTPException) as exception_info:
        reschedule_appointment(
            appointment_id=appointment.id,
            data=RescheduleRequest(date=TOMORROW, start_time=time(15, 0), end_time=time(15, 30), reason='Owner travelling'),
            requestor_id=OWNER_ID,
            db=appointment_db,
        )

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail['code'] == 'validation_error'


def test_complete_request_rejects_negative_cost() -> None:
    with pytest.raises(ValidationError):
        CompleteAppointmentRequest(cost=Decimal('-5'))


def test_create_appointment_books_for_requestor(appointment_db) -> None:
    appointment = _create(appointment_db)

    assert appointment.owner_id == OWNER_ID
    assert appointment.status == AppointmentStatus.SCHEDULED.value
    assert appointment.date == TOMORROW


def test_create_appointment_rejects_today(appointment_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        _create(appointment_db, day=date.today())

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == {
        'code': 'validation_error',
        'message': 'Appointments must be booked for a future date.',
    }


def test_create_appointment_reports_conflict(appointment_db) -> None:
    _create(appointment_db)

    with pytest.raises(HTTPException) as exception_info:
        _create(appointment_db, requestor_id=OTHER_OWNER_ID)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail['code'] == 'conflict'


def test_create_appointment_reports_not_available(appointment_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        _create(appointment_db, start=time(12, 0), end=time(12, 30))

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail['code'] == 'not_available'


def test_get_appointment_forbids_strangers(appointment_db) -> None:
    appointment = _create(appointment_db)

    assert get_appointment(appointment_id=appointment.id, requestor_id=PROVIDER_ID, db=appointment_db).id == appointment.id
    with pytest.raises(HTTPException) as exception_info:
        get_appointment(appointment_id=appointment.id, requestor_id=OTHER_OWNER_ID, db=appointment_db)

    assert exception_info.value.status_code == 403


def test_get_appointment_returns_not_found_when_missing(appointment_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_appointment(appointment_id=999, requestor_id=OWNER_ID, db=appointment_db)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == {'code': 'not_found', 'message': 'Appointment not found.'}


def test_list_appointments_by_role(appointment_db) -> None:
    appointment = _create(appointment_db)

    as_owner = list_appointments(
        role=AppointmentRole.OWNER,
        scope=AppointmentScope.UPCOMING,
        requestor_id=OWNER_ID,
        db=appointment_db,
    )
    as_provider = list_appointments(
        role=AppointmentRole.PROVIDER,
        scope=AppointmentScope.ALL,
        requestor_id=PROVIDER_ID,
        db=appointment_db,
    )
    as_stranger = list_appointments(
        role=AppointmentRole.OWNER,
        scope=AppointmentScope.ALL,
        requestor_id=OTHER_OWNER_ID,
        db=appointment_db,
    )

    assert [item.id for item in as_owner] == [appointment.id]
    assert [item.id for item in as_provider] == [appointment.id]
    assert as_stranger == []


def test_reschedule_options_include_own_slot(appointment_db) -> None:
    appointment = _create(appointment_db)
    _create(appointment_db, requestor_id=OTHER_OWNER_ID, start=time(9, 30), end=time(10, 0))

    options = list_reschedule_options(
        appointment_id=appointment.id,
        slot_date=TOMORROW,
        requestor_id=OWNER_ID,
        db=appointment_db,
    )
    starts = [slot.start_time for slot in options]

    assert time(9, 0) in starts
    assert time(9, 30) not in starts


def test_reschedule_and_cancel(appointment_db) -> None:
    appointment = _create(appointment_db)

    moved = reschedule_appointment(
        appointment_id=appointment.id,
        data=RescheduleRequest(date=TOMORROW, start_time=time(15, 0), end_time=time(15, 30), reason='Later is better'),
        requestor_id=OWNER_ID,
        db=appointment_db,
    )
    assert moved.start_time == time(15, 0)
    assert moved.notes == 'Rescheduled: Later is better'

    cancelled = cancel_appointment(appointment_id=appointment.id, requestor_id=OWNER_ID, db=appointment_db)
    assert cancelled.status == AppointmentStatus.CANCELLED.value

    with pytest.raises(HTTPException) as exception_info:
        cancel_appointment(appointment_id=appointment.id, requestor_id=OWNER_ID, db=appointment_db)
    assert exception_info.value.status_code == 422


def test_provider_visit_lifecycle(appointment_db) -> None:
    appointment = _create(appointment_db)

    with pytest.raises(HTTPException) as exception_info:
        confirm_appointment(appointment_id=appointment.id, requestor_id=OWNER_ID, db=appointment_db)
    assert exception_info.value.status_code == 403

    confirm_appointment(appointment_id=appointment.id, requestor_id=PROVIDER_ID, db=appointment_db)
    start_appointment(appointment_id=appointment.id, requestor_id=PROVIDER_ID, db=appointment_db)
    completed = complete_appointment(
        appointment_id=appointment.id,
        data=CompleteAppointmentRequest(notes='All good', prescription=['Ear drops'], cost=Decimal('42.00')),
        requestor_id=PROVIDER_ID,
        db=appointment_db,
    )

    assert completed.status == AppointmentStatus.COMPLETED.value
    assert completed.prescription == ['Ear drops']
    assert completed.cost == Decimal('42.00')


def test_database_errors_become_service_unavailable(appointment_db, monkeypatch: pytest.MonkeyPatch) -> None:
    def raise_database_error(*args, **kwargs):
        raise SQLAlchemyError('connection refused')

    monkeypatch.setattr(
        'vet_booking.routes.appointment_routes.BookingEngine.get_appointment',
        raise_database_error,
    )

    with pytest.raises(HTTPException) as exception_info:
        get_appointment(appointment_id=1, requestor_id=OWNER_ID, db=appointment_db)

    assert exception_info.value.status_code == 503
    assert exception_info.value.detail == 'Database unavailable. Verify DATABASE_URL and Postgres credentials.'
