import os
from datetime import date, time

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from vet_booking.database import Base  # noqa: E402
from vet_booking.models.appointment import Appointment  # noqa: E402
from vet_booking.models.schedule import BlockedSlot, ScheduleException, Weekday, WeeklySchedule  # noqa: E402
from vet_booking.scheduling.schedule_service import ScheduleService  # noqa: E402

TABLES = [WeeklySchedule.__table__, ScheduleException.__table__, BlockedSlot.__table__, Appointment.__table__]

PROVIDER_ID = 'vet-1'
OWNER_ID = 'owner-1'
OTHER_OWNER_ID = 'owner-2'
MONDAY = date(2026, 1, 5)
TUESDAY = date(2026, 1, 6)
SUNDAY = date(2026, 1, 4)


def build_session_factory(url: str, **engine_kwargs):
    engine = create_engine(url, **engine_kwargs)
    Base.metadata.create_all(bind=engine, tables=TABLES)
    return engine, sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db():
    engine, testing_session_local = build_session_factory('sqlite:///:memory:')

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine, tables=list(reversed(TABLES)))
        engine.dispose()


def set_weekday(
    session,
    weekday: Weekday,
    start: time = time(8, 0),
    end: time = time(18, 0),
    break_start: time | None = time(12, 0),
    break_end: time | None = time(13, 0),
    slot_duration: int = 30,
    provider_id: str = PROVIDER_ID,
):
    return ScheduleService(session).update_day_schedule(
        provider_id,
        provider_id,
        weekday,
        is_working=True,
        start_time=start,
        end_time=end,
        break_start_time=break_start,
        break_end_time=break_end,
        slot_duration=slot_duration,
    )


@pytest.fixture
def working_week(db):
    """Monday to Friday 08:00-18:00 with a 12:00-13:00 break and 30-minute slots."""
    ScheduleService(db).ensure_default_schedule(PROVIDER_ID)
    for weekday in (Weekday.MONDAY, Weekday.TUESDAY, Weekday.WEDNESDAY, Weekday.THURSDAY, Weekday.FRIDAY):
        set_weekday(db, weekday)
    return db
