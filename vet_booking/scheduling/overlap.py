"""Half-open interval overlap checks shared by slot generation and booking."""

from datetime import time

from sqlalchemy import and_
from sqlalchemy.orm import Query

from vet_booking.models.appointment import Appointment, AppointmentStatus


def intervals_overlap(start_a: time, end_a: time, start_b: time, end_b: time) -> bool:
    """``[start_a, end_a)`` and ``[start_b, end_b)`` share at least one instant."""
    return start_a < end_b and start_b < end_a


def overlapping_appointments(query: Query, provider_id: str, day, start_time: time, end_time: time) -> Query:
    """Narrow an Appointment query to non-cancelled rows overlapping the window."""
    return query.filter(
        and_(
            Appointment.provider_id == provider_id,
            Appointment.date == day,
            Appointment.status != AppointmentStatus.CANCELLED.value,
            Appointment.start_time < end_time,
            Appointment.end_time > start_time,
        )
    )
