"""Appointment model definitions."""

from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, Column, Date, DateTime, Index, Integer, Numeric, String, Text, Time, text
from vet_booking.database import Base


class AppointmentStatus(str, Enum):
    SCHEDULED = 'scheduled'
    CONFIRMED = 'confirmed'
    IN_PROGRESS = 'in-progress'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'


class Appointment(Base):
    """Represents a booked visit of one pet with one provider."""
    __tablename__ = "appointments"
    __table_args__ = (
        # At most one non-cancelled appointment per provider slot.
        Index(
            "uq_appointments_provider_slot",
            "provider_id",
            "date",
            "start_time",
            unique=True,
            postgresql_where=text("status != 'cancelled'"),
            sqlite_where=text("status != 'cancelled'"),
        ),
        Index("idx_appointments_owner_date", "owner_id", "date"),
    )

    id = Column(Integer, primary_key=True)
    pet_id = Column(String, nullable=False)
    owner_id = Column(String, nullable=False)
    provider_id = Column(String, nullable=False, index=True)
    clinic_id = Column(String, nullable=True)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    reason = Column(String, nullable=False)
    notes = Column(Text, nullable=True)
    status = Column(String, nullable=False, default=AppointmentStatus.SCHEDULED.value)
    prescription = Column(JSON, nullable=True)
    cost = Column(Numeric(10, 2), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<Appointment {self.id} {self.provider_id} {self.date} {self.start_time} {self.status}>"
