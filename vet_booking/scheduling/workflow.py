"""
Booking Workflow

The pet owner's step-by-step booking flow: pet -> date -> time -> details
-> confirm. Every step before ``confirm`` only reads the availability
index; ``confirm`` makes the single ``BookingEngine.book`` call. Dates in
the past (or beyond the booking window) are rejected here so the engine
stays a pure availability arbiter.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, time, timedelta
from enum import Enum

from vet_booking.core import config
from vet_booking.core.exceptions import Conflict, ValidationError
from vet_booking.models.appointment import Appointment
from vet_booking.scheduling.availability import AvailabilityIndex
from vet_booking.scheduling.booking import BookingEngine
from vet_booking.scheduling.slots import TimeSlot

logger = logging.getLogger(__name__)


class BookingStep(str, Enum):
    PET = 'pet'
    DATE = 'date'
    TIME = 'time'
    DETAILS = 'details'
    CONFIRM = 'confirm'


STEP_ORDER = [BookingStep.PET, BookingStep.DATE, BookingStep.TIME, BookingStep.DETAILS, BookingStep.CONFIRM]


@dataclass
class BookingDraft:
    pet_id: str | None = None
    day: date | None = None
    slot: TimeSlot | None = None
    reason: str | None = None
    notes: str | None = None
    step: BookingStep = BookingStep.PET
    completed: list[BookingStep] = field(default_factory=list)


def validate_booking_date(day: date, today: date, window_days: int | None = None) -> None:
    """Bookable dates run from tomorrow through ``today + window_days``."""
    window_days = config.BOOKING_WINDOW_DAYS if window_days is None else window_days
    if day <= today:
        raise ValidationError('Appointments must be booked for a future date.')
    if day > today + timedelta(days=window_days):
        raise ValidationError(f'Appointments can only be booked within the next {window_days} days.')


class BookingWorkflow:

    def __init__(
        self,
        availability: AvailabilityIndex,
        engine: BookingEngine,
        provider_id: str,
        owner_id: str,
        clinic_id: str | None = None,
        today: date | None = None,
    ):
        self.availability = availability
        self.engine = engine
        self.provider_id = provider_id
        self.owner_id = owner_id
        self.clinic_id = clinic_id
        self.today = today or date.today()
        self.draft = BookingDraft()

    @property
    def step(self) -> BookingStep:
        return self.draft.step

    def available_dates(self) -> list[date]:
        start = self.today + timedelta(days=1)
        end = self.today + timedelta(days=config.BOOKING_WINDOW_DAYS)
        return self.availability.available_dates(self.provider_id, start, end)

    def time_options(self) -> list[TimeSlot]:
        if self.draft.day is None:
            raise ValidationError('Choose a date first.')
        return self.availability.list_available(self.provider_id, self.draft.day)

    def select_pet(self, pet_id: str) -> BookingStep:
        self._require_step(BookingStep.PET)
        if not pet_id or not pet_id.strip():
            raise ValidationError('Please select a pet.')
        self.draft.pet_id = pet_id
        return self._advance()

    def select_date(self, day: date) -> BookingStep:
        self._require_step(BookingStep.DATE)
        validate_booking_date(day, self.today)
        self.draft.day = day
        self.draft.slot = None
        return self._advance()

    def select_time(self, start_time: time) -> BookingStep:
        self._require_step(BookingStep.TIME)
        slot = next((option for option in self.time_options() if option.start_time == start_time), None)
        if slot is None:
            raise ValidationError('Please choose one of the available times.')
        self.draft.slot = slot
        return self._advance()

    def set_details(self, reason: str, notes: str | None = None) -> BookingStep:
        self._require_step(BookingStep.DETAILS)
        if not reason or not reason.strip():
            raise ValidationError('Please provide a reason for the visit.')
        if notes and len(notes.strip()) > config.MAX_APPOINTMENT_NOTES_LENGTH:
            raise ValidationError(f'Notes must be {config.MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')
        self.draft.reason = reason.strip()
        self.draft.notes = notes.strip() if notes and notes.strip() else None
        return self._advance()

    def back(self) -> BookingStep:
        index = STEP_ORDER.index(self.draft.step)
        if index > 0:
            self.draft.step = STEP_ORDER[index - 1]
            if self.draft.step in self.draft.completed:
                self.draft.completed.remove(self.draft.step)
        return self.draft.step

    def confirm(self) -> Appointment:
        self._require_step(BookingStep.CONFIRM)
        draft = self.draft
        # The date may have gone stale while the user sat on the summary screen.
        validate_booking_date(draft.day, self.today)

        try:
            appointment = self.engine.book(
                provider_id=self.provider_id,
                day=draft.day,
                start_time=draft.slot.start_time,
                end_time=draft.slot.end_time,
                pet_id=draft.pet_id,
                owner_id=self.owner_id,
                reason=draft.reason,
                clinic_id=self.clinic_id,
                notes=draft.notes,
            )
        except Conflict:
            # Someone else took the slot: send the user back to pick a new time.
            draft.slot = None
            draft.step = BookingStep.TIME
            draft.completed = [BookingStep.PET, BookingStep.DATE]
            raise

        logger.info('Workflow booked appointment %s for owner %s', appointment.id, self.owner_id)
        return appointment

    def _require_step(self, step: BookingStep) -> None:
        if self.draft.step is not step:
            raise ValidationError(f'Complete the {self.draft.step.value} step first.')

    def _advance(self) -> BookingStep:
        current = self.draft.step
        if current not in self.draft.completed:
            self.draft.completed.append(current)
        self.draft.step = STEP_ORDER[STEP_ORDER.index(current) + 1]
        return self.draft.step
