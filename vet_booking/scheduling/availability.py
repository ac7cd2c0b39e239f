"""
Availability Index

Computed-on-read view of a provider's slots. A slot is available when it
is generated for the date, the provider has not blocked it, and no
non-cancelled appointment overlaps it. Nothing is cached between calls,
so a committed schedule change or cancellation shows up on the next read
and a rolled-back one never does.
"""

import logging
from collections import defaultdict
from datetime import date, time

from sqlalchemy.orm import Session

from vet_booking.core.exceptions import Conflict, NotAvailable, ValidationError
from vet_booking.models.appointment import Appointment, AppointmentStatus
from vet_booking.scheduling.overlap import intervals_overlap, overlapping_appointments
from vet_booking.scheduling.schedule_service import ScheduleService
from vet_booking.scheduling.slots import TimeSlot

logger = logging.getLogger(__name__)


class AvailabilityIndex:

    def __init__(self, db: Session):
        self.db = db
        self.schedules = ScheduleService(db)

    def list_range(
        self,
        provider_id: str,
        start_date: date,
        end_date: date,
        exclude_appointment_id: int | None = None,
    ) -> list[TimeSlot]:
        """Every generated slot in the range with booked/blocked state filled in."""
        slots = self.schedules.generated_slots(provider_id, start_date, end_date)
        if not slots:
            return slots

        blocked = {
            (blocked_slot.slot_date, blocked_slot.start_time)
            for blocked_slot in self.schedules.list_blocked_slots(provider_id, start_date, end_date)
        }

        query = self.db.query(Appointment).filter(
            Appointment.provider_id == provider_id,
            Appointment.date >= start_date,
            Appointment.date <= end_date,
            Appointment.status != AppointmentStatus.CANCELLED.value,
        )
        if exclude_appointment_id is not None:
            query = query.filter(Appointment.id != exclude_appointment_id)

        appointments_by_date: dict[date, list[Appointment]] = defaultdict(list)
        for appointment in query.all():
            appointments_by_date[appointment.date].append(appointment)

        for slot in slots:
            slot.is_blocked = (slot.date, slot.start_time) in blocked
            for appointment in appointments_by_date.get(slot.date, []):
                if intervals_overlap(slot.start_time, slot.end_time, appointment.start_time, appointment.end_time):
                    slot.is_booked = True
                    slot.appointment_id = appointment.id
                    break

        return slots

    def list_slots(self, provider_id: str, day: date) -> list[TimeSlot]:
        return self.list_range(provider_id, day, day)

    def list_available(self, provider_id: str, day: date) -> list[TimeSlot]:
        return [slot for slot in self.list_slots(provider_id, day) if slot.is_available]

    def available_dates(self, provider_id: str, start_date: date, end_date: date) -> list[date]:
        days = {slot.date for slot in self.list_range(provider_id, start_date, end_date) if slot.is_available}
        return sorted(days)

    def find_slot(self, provider_id: str, day: date, start_time: time, end_time: time) -> TimeSlot | None:
        """The generated slot matching the window exactly, ignoring bookings."""
        for slot in self.schedules.generated_slots(provider_id, day, day):
            if slot.start_time == start_time and slot.end_time == end_time:
                return slot
        return None

    def check_bookable(
        self,
        provider_id: str,
        day: date,
        start_time: time,
        end_time: time,
        exclude_appointment_id: int | None = None,
    ) -> TimeSlot:
        """Return the slot or raise NotAvailable/Conflict.

        Used by the booking engine inside its transaction; the outcome is only
        authoritative there.
        """
        if start_time >= end_time:
            raise ValidationError('Start time must be before end time.')

        slot = self.find_slot(provider_id, day, start_time, end_time)
        if slot is None:
            raise NotAvailable('The provider has no slot at this time.')

        blocked = any(
            blocked_slot.start_time == start_time
            for blocked_slot in self.schedules.list_blocked_slots(provider_id, day, day)
        )
        if blocked:
            raise NotAvailable('The provider has blocked this time.')

        query = overlapping_appointments(self.db.query(Appointment.id), provider_id, day, start_time, end_time)
        if exclude_appointment_id is not None:
            query = query.filter(Appointment.id != exclude_appointment_id)
        if query.first() is not None:
            raise Conflict('This time slot is already booked. Please choose another slot.')

        return slot

    def is_available(
        self,
        provider_id: str,
        day: date,
        start_time: time,
        end_time: time,
    ) -> bool:
        """Advisory point query for pickers; booking re-checks atomically."""
        try:
            self.check_bookable(provider_id, day, start_time, end_time)
        except (NotAvailable, Conflict):
            return False
        return True
