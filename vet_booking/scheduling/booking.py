"""
Booking Engine

Creates, reschedules and moves appointments through their lifecycle.
``book`` and ``reschedule`` run the availability check and the write in
one transaction. Two layers keep concurrent writers apart:

1. the provider's weekly-schedule row for the target weekday is read
   ``FOR UPDATE`` so writers for the same provider/day queue up
   (PostgreSQL; SQLite serializes writers on its own);
2. the partial unique index ``uq_appointments_provider_slot`` rejects a
   second non-cancelled row for the same (provider, date, start time),
   which surfaces here as ``Conflict``.

The engine never retries. Past dates are the caller's concern.
"""

import logging
from datetime import date, time
from decimal import Decimal
from enum import Enum

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from vet_booking.core import config
from vet_booking.core.exceptions import Conflict, IllegalTransition, NotAvailable, NotFound, ValidationError
from vet_booking.models.appointment import Appointment, AppointmentStatus
from vet_booking.models.schedule import Weekday, WeeklySchedule
from vet_booking.scheduling.availability import AvailabilityIndex
from vet_booking.scheduling.state_machine import (
    Actor,
    check_reschedulable,
    check_transition,
    require_participant,
    require_provider,
)

logger = logging.getLogger(__name__)


class AppointmentScope(str, Enum):
    ALL = 'all'
    UPCOMING = 'upcoming'
    PAST = 'past'


UPCOMING_STATUSES = (AppointmentStatus.SCHEDULED.value, AppointmentStatus.CONFIRMED.value)
CLOSED_STATUSES = (AppointmentStatus.COMPLETED.value, AppointmentStatus.CANCELLED.value)


def append_note(notes: str | None, label: str, text: str | None) -> str | None:
    if not text or not text.strip():
        return notes
    return f"{notes or ''}\n\n{label}: {text.strip()}".strip()


class BookingEngine:

    def __init__(self, db: Session):
        self.db = db
        self.availability = AvailabilityIndex(db)

    # ----------------------------------------------------------------- writes

    def book(
        self,
        provider_id: str,
        day: date,
        start_time: time,
        end_time: time,
        pet_id: str,
        owner_id: str,
        reason: str,
        clinic_id: str | None = None,
        notes: str | None = None,
    ) -> Appointment:
        _require_text(provider_id, 'Provider')
        _require_text(pet_id, 'Pet')
        _require_text(owner_id, 'Owner')
        reason = _validate_reason(reason)
        notes = _validate_notes(notes)
        if start_time >= end_time:
            raise ValidationError('Start time must be before end time.')

        try:
            self._lock_provider_day(provider_id, day)
            self.availability.check_bookable(provider_id, day, start_time, end_time)

            appointment = Appointment(
                pet_id=pet_id,
                owner_id=owner_id,
                provider_id=provider_id,
                clinic_id=clinic_id,
                date=day,
                start_time=start_time,
                end_time=end_time,
                reason=reason,
                notes=notes,
                status=AppointmentStatus.SCHEDULED.value,
            )
            self.db.add(appointment)
            self.db.flush()
            self.db.commit()
        except (NotAvailable, Conflict) as exc:
            self.db.rollback()
            logger.info('Booking refused for provider %s on %s at %s: %s', provider_id, day, start_time, exc.code)
            raise
        except IntegrityError as exc:
            self.db.rollback()
            logger.info('Booking lost race for provider %s on %s at %s', provider_id, day, start_time)
            raise Conflict('This time slot is already booked. Please choose another slot.') from exc

        self.db.refresh(appointment)
        logger.info('Booked appointment %s for provider %s on %s at %s', appointment.id, provider_id, day, start_time)
        return appointment

    def reschedule(
        self,
        appointment_id: int,
        new_date: date,
        new_start_time: time,
        new_end_time: time,
        requestor_id: str,
        reason: str | None = None,
    ) -> Appointment:
        appointment = self._get(appointment_id, lock=True)
        require_participant(appointment, requestor_id)
        check_reschedulable(appointment)

        if new_start_time >= new_end_time:
            raise ValidationError('Start time must be before end time.')
        reason = _validate_notes(reason)

        if (
            appointment.date == new_date
            and appointment.start_time == new_start_time
            and appointment.end_time == new_end_time
        ):
            return appointment

        check_transition(appointment, AppointmentStatus.SCHEDULED, Actor.RESCHEDULE)
        provider_id = appointment.provider_id
        notes = append_note(appointment.notes, 'Rescheduled', reason)
        if notes and len(notes) > config.MAX_APPOINTMENT_NOTES_LENGTH:
            raise ValidationError(
                f'Appointment notes would exceed {config.MAX_APPOINTMENT_NOTES_LENGTH} characters. '
                'Please shorten the reschedule reason.'
            )

        try:
            self._lock_provider_day(provider_id, new_date)
            self.availability.check_bookable(
                provider_id,
                new_date,
                new_start_time,
                new_end_time,
                exclude_appointment_id=appointment.id,
            )

            # One UPDATE moves the appointment: the old slot frees and the new
            # one fills in the same commit.
            self._update_if_status(
                appointment,
                appointment.status,
                {
                    'date': new_date,
                    'start_time': new_start_time,
                    'end_time': new_end_time,
                    'notes': notes,
                    'status': AppointmentStatus.SCHEDULED.value,
                },
            )
            self.db.commit()
        except (NotAvailable, Conflict) as exc:
            self.db.rollback()
            logger.info('Reschedule of appointment %s refused: %s', appointment_id, exc.code)
            raise
        except IntegrityError as exc:
            self.db.rollback()
            logger.info('Reschedule of appointment %s lost race', appointment_id)
            raise Conflict('This time slot is already booked. Please choose another slot.') from exc

        self.db.refresh(appointment)
        logger.info('Rescheduled appointment %s to %s at %s', appointment.id, new_date, new_start_time)
        return appointment

    def cancel(self, appointment_id: int, requestor_id: str) -> Appointment:
        appointment = self._get(appointment_id, lock=True)
        actor = require_participant(appointment, requestor_id)
        return self._transition(appointment, AppointmentStatus.CANCELLED, actor)

    def confirm(self, appointment_id: int, provider_id: str) -> Appointment:
        appointment = self._get(appointment_id, lock=True)
        require_provider(appointment, provider_id)
        return self._transition(appointment, AppointmentStatus.CONFIRMED, Actor.PROVIDER)

    def start(self, appointment_id: int, provider_id: str) -> Appointment:
        appointment = self._get(appointment_id, lock=True)
        require_provider(appointment, provider_id)
        return self._transition(appointment, AppointmentStatus.IN_PROGRESS, Actor.PROVIDER)

    def complete(
        self,
        appointment_id: int,
        provider_id: str,
        notes: str | None = None,
        prescription: list[str] | None = None,
        cost: Decimal | float | None = None,
    ) -> Appointment:
        appointment = self._get(appointment_id, lock=True)
        require_provider(appointment, provider_id)

        changes = {}
        if notes is not None:
            changes['notes'] = _validate_notes(notes)
        if prescription is not None:
            if any(not isinstance(item, str) or not item.strip() for item in prescription):
                raise ValidationError('Prescription entries must be non-empty text.')
            changes['prescription'] = [item.strip() for item in prescription]
        if cost is not None:
            cost = Decimal(str(cost))
            if cost < 0:
                raise ValidationError('Cost must not be negative.')
            changes['cost'] = cost

        return self._transition(appointment, AppointmentStatus.COMPLETED, Actor.PROVIDER, **changes)

    # ------------------------------------------------------------------ reads

    def get_appointment(self, appointment_id: int, requestor_id: str) -> Appointment:
        appointment = self._get(appointment_id)
        require_participant(appointment, requestor_id)
        return appointment

    def list_for_owner(
        self,
        owner_id: str,
        scope: AppointmentScope = AppointmentScope.ALL,
        today: date | None = None,
    ) -> list[Appointment]:
        query = self.db.query(Appointment).filter(Appointment.owner_id == owner_id)
        return self._scoped(query, scope, today)

    def list_for_provider(
        self,
        provider_id: str,
        scope: AppointmentScope = AppointmentScope.ALL,
        today: date | None = None,
    ) -> list[Appointment]:
        query = self.db.query(Appointment).filter(Appointment.provider_id == provider_id)
        return self._scoped(query, scope, today)

    def list_for_clinic(self, clinic_id: str) -> list[Appointment]:
        return self.db.query(Appointment).filter(
            Appointment.clinic_id == clinic_id,
        ).order_by(Appointment.date.asc(), Appointment.start_time.asc()).all()

    # ---------------------------------------------------------------- helpers

    def _get(self, appointment_id: int, lock: bool = False) -> Appointment:
        if lock:
            # Status changes re-read the row under FOR UPDATE, never from the identity map.
            appointment = self.db.query(Appointment).filter(
                Appointment.id == appointment_id,
            ).with_for_update().populate_existing().one_or_none()
        else:
            appointment = self.db.get(Appointment, appointment_id)
        if appointment is None:
            raise NotFound('Appointment not found.')
        return appointment

    def _lock_provider_day(self, provider_id: str, day: date) -> None:
        self.db.query(WeeklySchedule.id).filter(
            WeeklySchedule.provider_id == provider_id,
            WeeklySchedule.day_of_week == int(Weekday.from_date(day)),
        ).with_for_update().first()

    def _update_if_status(self, appointment: Appointment, expected: str, values: dict) -> None:
        """Write ``values`` only while the row still holds ``expected``.

        Backends that ignore ``FOR UPDATE`` (SQLite) still cannot overwrite a
        status another session committed in between.
        """
        updated = self.db.query(Appointment).filter(
            Appointment.id == appointment.id,
            Appointment.status == expected,
        ).update(values, synchronize_session=False)

        if updated == 0:
            self.db.rollback()
            logger.info('Appointment %s changed status from %s before the write', appointment.id, expected)
            raise IllegalTransition('This appointment was changed by someone else. Please reload it and try again.')

    def _transition(self, appointment: Appointment, target: AppointmentStatus, actor: Actor, **changes) -> Appointment:
        check_transition(appointment, target, actor)
        previous = appointment.status

        self._update_if_status(appointment, previous, {'status': target.value, **changes})
        self.db.commit()
        self.db.refresh(appointment)
        logger.info('Appointment %s moved from %s to %s by %s', appointment.id, previous, target.value, actor.value)
        return appointment

    def _scoped(self, query, scope: AppointmentScope, today: date | None) -> list[Appointment]:
        today = today or date.today()
        scope = AppointmentScope(scope)

        if scope is AppointmentScope.UPCOMING:
            query = query.filter(
                Appointment.date >= today,
                Appointment.status.in_(UPCOMING_STATUSES),
            ).order_by(Appointment.date.asc(), Appointment.start_time.asc())
        elif scope is AppointmentScope.PAST:
            query = query.filter(
                or_(Appointment.date < today, Appointment.status.in_(CLOSED_STATUSES)),
            ).order_by(Appointment.date.desc(), Appointment.start_time.desc())
        else:
            query = query.order_by(Appointment.date.asc(), Appointment.start_time.asc())

        return query.all()


def _require_text(value: str | None, label: str) -> None:
    if not value or not value.strip():
        raise ValidationError(f'{label} is required.')


def _validate_reason(reason: str | None) -> str:
    normalized = (reason or '').strip()
    if not normalized:
        raise ValidationError('Please provide a reason for the visit.')
    if len(normalized) > config.MAX_REASON_LENGTH:
        raise ValidationError(f'Reason must be {config.MAX_REASON_LENGTH} characters or fewer.')
    return normalized


def _validate_notes(notes: str | None) -> str | None:
    if notes is None:
        return None
    normalized = notes.strip()
    if not normalized:
        return None
    if len(normalized) > config.MAX_APPOINTMENT_NOTES_LENGTH:
        raise ValidationError(f'Notes must be {config.MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')
    return normalized
