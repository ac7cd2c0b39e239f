"""Schedule model definitions."""

from enum import Enum, IntEnum
from datetime import date as date_type, datetime

from sqlalchemy import Boolean, Column, Date, DateTime, Integer, String, Text, Time, UniqueConstraint
from vet_booking.database import Base


class Weekday(IntEnum):
    """Day of week as stored in ``weekly_schedules.day_of_week``."""
    SUNDAY = 0
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6

    @classmethod
    def from_date(cls, day: date_type) -> 'Weekday':
        # date.weekday() is Monday=0
        return cls((day.weekday() + 1) % 7)

    @property
    def label(self) -> str:
        return self.name.capitalize()


class ExceptionType(str, Enum):
    CLOSED = 'closed'
    CUSTOM_HOURS = 'custom_hours'


class WeeklySchedule(Base):
    """Recurring working hours for one provider on one weekday."""
    __tablename__ = "weekly_schedules"
    __table_args__ = (
        UniqueConstraint("provider_id", "day_of_week", name="uq_weekly_schedules_provider_day"),
    )

    id = Column(Integer, primary_key=True)
    provider_id = Column(String, nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)
    is_working = Column(Boolean, nullable=False, default=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    break_start_time = Column(Time, nullable=True)
    break_end_time = Column(Time, nullable=True)
    slot_duration = Column(Integer, nullable=False, default=30)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def weekday(self) -> Weekday:
        return Weekday(self.day_of_week)


class ScheduleException(Base):
    """One-day override of the weekly schedule."""
    __tablename__ = "schedule_exceptions"
    __table_args__ = (
        UniqueConstraint("provider_id", "exception_date", name="uq_schedule_exceptions_provider_date"),
    )

    id = Column(Integer, primary_key=True)
    provider_id = Column(String, nullable=False, index=True)
    exception_date = Column(Date, nullable=False)
    exception_type = Column(String, nullable=False)
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)
    break_start_time = Column(Time, nullable=True)
    break_end_time = Column(Time, nullable=True)
    slot_duration = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class BlockedSlot(Base):
    """A generated slot the provider has withdrawn from booking."""
    __tablename__ = "blocked_slots"
    __table_args__ = (
        UniqueConstraint("provider_id", "slot_date", "start_time", name="uq_blocked_slots_provider_slot"),
    )

    id = Column(Integer, primary_key=True)
    provider_id = Column(String, nullable=False, index=True)
    slot_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    reason = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
