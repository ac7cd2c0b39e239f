from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from vet_booking.core import config


engine = create_engine(config.DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_checked_tables: set[str] = set()

SCHEDULE_EXCEPTION_INDEXES = [
    'CREATE INDEX IF NOT EXISTS idx_schedule_exceptions_provider_date '
    'ON schedule_exceptions(provider_id, exception_date)',
]
APPOINTMENT_INDEXES = [
    # Two concurrent bookings of one slot fail for all but the first committed writer.
    'CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_provider_slot '
    "ON appointments(provider_id, date, start_time) WHERE status != 'cancelled'",
    'CREATE INDEX IF NOT EXISTS idx_appointments_owner_date ON appointments(owner_id, date)',
]


def _ensure_table_indexes(table_name: str, indexes: list[str]) -> None:
    """Create the lookup and uniqueness indexes on an existing table.

    Runs once per process; tables that do not exist yet are left to
    ``create_all``.
    """
    if table_name in _checked_tables:
        return

    with _schema_lock:
        if table_name in _checked_tables:
            return

        if table_name in inspect(engine).get_table_names():
            with engine.begin() as connection:
                for statement in indexes:
                    connection.execute(text(statement))

        _checked_tables.add(table_name)


def ensure_schedule_schema() -> None:
    _ensure_table_indexes('schedule_exceptions', SCHEDULE_EXCEPTION_INDEXES)


def ensure_appointment_schema() -> None:
    _ensure_table_indexes('appointments', APPOINTMENT_INDEXES)
