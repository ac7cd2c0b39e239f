from datetime import date, datetime, timedelta, timezone

import jwt
import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from conftest import OTHER_OWNER_ID, OWNER_ID, PROVIDER_ID, TABLES, build_session_factory, set_weekday
from vet_booking.auth.dependencies import get_requestor_id
from vet_booking.auth.jwt_handler import create_access_token, decode_access_token
from vet_booking.core import config
from vet_booking.database import Base
from vet_booking.main import app
from vet_booking.models.schedule import Weekday
from vet_booking.routes.common import get_db


def _credentials(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme='Bearer', credentials=token)


def test_access_token_round_trip() -> None:
    token = create_access_token(PROVIDER_ID, role='provider')

    payload = decode_access_token(token)

    assert payload['sub'] == PROVIDER_ID
    assert payload['role'] == 'provider'
    assert get_requestor_id(_credentials(token)) == PROVIDER_ID


def test_get_requestor_id_rejects_garbage_token() -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_requestor_id(_credentials('not-a-token'))

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'Invalid token'


def test_get_requestor_id_rejects_expired_token() -> None:
    token = create_access_token(OWNER_ID, expires_minutes=-5)

    with pytest.raises(HTTPException) as exception_info:
        get_requestor_id(_credentials(token))

    assert exception_info.value.status_code == 401


def test_get_requestor_id_rejects_token_signed_with_other_key() -> None:
    token = jwt.encode({'sub': OWNER_ID}, 'some-other-secret-that-is-long-enough', algorithm=config.JWT_ALGORITHM)

    with pytest.raises(HTTPException) as exception_info:
        get_requestor_id(_credentials(token))

    assert exception_info.value.detail == 'Invalid token'


def test_get_requestor_id_requires_subject() -> None:
    expires = datetime.now(timezone.utc) + timedelta(minutes=5)
    token = jwt.encode({'exp': expires}, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)

    with pytest.raises(HTTPException) as exception_info:
        get_requestor_id(_credentials(token))

    assert exception_info.value.detail == 'Invalid token subject'


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch):
    engine, testing_session_local = build_session_factory(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    setup = testing_session_local()
    try:
        for weekday in Weekday:
            set_weekday(setup, weekday)
    finally:
        setup.close()

    def override_get_db():
        db = testing_session_local()
        try:
            yield db
        finally:
            db.close()

    for module in ('schedule_routes', 'availability_routes', 'appointment_routes'):
        monkeypatch.setattr(f'vet_booking.routes.{module}.ensure_database_ready', lambda: None)
    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        Base.metadata.drop_all(bind=engine, tables=list(reversed(TABLES)))
        engine.dispose()


def _auth(requestor_id: str) -> dict:
    return {'Authorization': f'Bearer {create_access_token(requestor_id)}'}


def test_booking_over_http(client: TestClient) -> None:
    tomorrow = (date.today() + timedelta(days=1)).isoformat()
    body = {
        'provider_id': PROVIDER_ID,
        'pet_id': 'pet-1',
        'date': tomorrow,
        'start_time': '09:00',
        'end_time': '09:30',
        'reason': 'Vaccination',
    }

    assert client.get('/').json() == {'status': 'Vet Booking API Running'}
    assert client.post('/appointments', json=body).status_code in (401, 403)

    created = client.post('/appointments', json=body, headers=_auth(OWNER_ID))
    assert created.status_code == 201
    assert created.json()['status'] == 'scheduled'
    assert created.json()['owner_id'] == OWNER_ID

    taken = client.post('/appointments', json=body, headers=_auth(OTHER_OWNER_ID))
    assert taken.status_code == 409
    assert taken.json()['detail']['code'] == 'conflict'

    slots = client.get(f'/availability/{PROVIDER_ID}', params={'date': tomorrow}).json()
    assert '09:00:00' not in [slot['start_time'] for slot in slots]

    forbidden = client.get(f"/appointments/{created.json()['id']}", headers=_auth(OTHER_OWNER_ID))
    assert forbidden.status_code == 403
