"""Schedule store - weekly rules, date exceptions and blocked slots for a provider."""

import logging
from datetime import date, time, timedelta
from typing import Mapping

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from vet_booking.core import config
from vet_booking.core.exceptions import Conflict, NotAvailable, NotFound, Unauthorized, ValidationError
from vet_booking.models.appointment import Appointment
from vet_booking.models.schedule import BlockedSlot, ExceptionType, ScheduleException, Weekday, WeeklySchedule
from vet_booking.scheduling.overlap import overlapping_appointments
from vet_booking.scheduling.slots import TimeSlot, generate_slots, iterate_days, validate_day_rules

logger = logging.getLogger(__name__)


def _parse_clock(value: str) -> time:
    hours, minutes = value.split(':')
    return time(int(hours), int(minutes))


DEFAULT_START = _parse_clock(config.DEFAULT_START_TIME)
DEFAULT_END = _parse_clock(config.DEFAULT_END_TIME)


def default_day(provider_id: str, weekday: Weekday) -> WeeklySchedule:
    return WeeklySchedule(
        provider_id=provider_id,
        day_of_week=int(weekday),
        is_working=False,
        start_time=DEFAULT_START,
        end_time=DEFAULT_END,
        break_start_time=None,
        break_end_time=None,
        slot_duration=config.DEFAULT_SLOT_DURATION,
    )


class ScheduleService:
    """Reads and writes a provider's schedule rows.

    Every write is provider-only and commits on success. Slots are never
    persisted, so after a write the affected range simply recomputes on the
    next read; ``regenerate_slots`` reports what that range now looks like.
    """

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------ reads

    def get_weekly_schedule(self, provider_id: str) -> dict[Weekday, WeeklySchedule]:
        """All seven days, with unsaved "off" defaults filling any gaps."""
        stored = self.load_weekly(provider_id)
        return {weekday: stored.get(weekday) or default_day(provider_id, weekday) for weekday in Weekday}

    def load_weekly(self, provider_id: str) -> dict[Weekday, WeeklySchedule]:
        rows = self.db.query(WeeklySchedule).filter(WeeklySchedule.provider_id == provider_id).all()
        return {Weekday(row.day_of_week): row for row in rows}

    def load_exceptions(self, provider_id: str, start_date: date, end_date: date) -> dict[date, ScheduleException]:
        return {exception.exception_date: exception for exception in self.list_exceptions(provider_id, start_date, end_date)}

    def list_exceptions(self, provider_id: str, start_date: date, end_date: date) -> list[ScheduleException]:
        if end_date < start_date:
            raise ValidationError('End date must not be before start date.')

        return self.db.query(ScheduleException).filter(
            ScheduleException.provider_id == provider_id,
            ScheduleException.exception_date >= start_date,
            ScheduleException.exception_date <= end_date,
        ).order_by(ScheduleException.exception_date.asc()).all()

    def list_blocked_slots(self, provider_id: str, start_date: date, end_date: date) -> list[BlockedSlot]:
        return self.db.query(BlockedSlot).filter(
            BlockedSlot.provider_id == provider_id,
            BlockedSlot.slot_date >= start_date,
            BlockedSlot.slot_date <= end_date,
        ).order_by(BlockedSlot.slot_date.asc(), BlockedSlot.start_time.asc()).all()

    def generated_slots(self, provider_id: str, start_date: date, end_date: date) -> list[TimeSlot]:
        """Candidate slots for the range with no booking or block overlay."""
        return generate_slots(
            provider_id,
            start_date,
            end_date,
            self.load_weekly(provider_id),
            self.load_exceptions(provider_id, start_date, end_date),
        )

    # ----------------------------------------------------------------- writes

    def ensure_default_schedule(self, provider_id: str) -> dict[Weekday, WeeklySchedule]:
        """Create the seven "off" rows a newly registered provider starts with."""
        stored = self.load_weekly(provider_id)
        missing = [weekday for weekday in Weekday if weekday not in stored]

        for weekday in missing:
            row = default_day(provider_id, weekday)
            self.db.add(row)
            stored[weekday] = row

        if missing:
            self.db.commit()
            logger.info('Created default schedule for provider %s (%d days)', provider_id, len(missing))

        return stored

    def update_day_schedule(
        self,
        provider_id: str,
        requestor_id: str,
        weekday: Weekday,
        *,
        is_working: bool,
        start_time: time | None = None,
        end_time: time | None = None,
        break_start_time: time | None = None,
        break_end_time: time | None = None,
        slot_duration: int | None = None,
    ) -> WeeklySchedule:
        self._require_provider(provider_id, requestor_id)
        row = self._apply_day(
            provider_id,
            weekday,
            is_working=is_working,
            start_time=start_time,
            end_time=end_time,
            break_start_time=break_start_time,
            break_end_time=break_end_time,
            slot_duration=slot_duration,
        )
        self.db.commit()
        self.db.refresh(row)
        logger.info('Provider %s updated %s schedule', provider_id, weekday.label)
        return row

    def update_weekly_schedule(
        self,
        provider_id: str,
        requestor_id: str,
        days: Mapping[Weekday, Mapping],
    ) -> dict[Weekday, WeeklySchedule]:
        """Upsert several weekdays in one transaction; any invalid day aborts all."""
        self._require_provider(provider_id, requestor_id)

        # Validate everything before touching the session.
        for values in days.values():
            if values.get('is_working'):
                validate_day_rules(
                    values.get('start_time'),
                    values.get('end_time'),
                    values.get('break_start_time'),
                    values.get('break_end_time'),
                    values.get('slot_duration') or config.DEFAULT_SLOT_DURATION,
                )

        for weekday, values in days.items():
            self._apply_day(provider_id, weekday, **values)

        self.db.commit()
        logger.info('Provider %s updated weekly schedule (%d days)', provider_id, len(days))
        return self.get_weekly_schedule(provider_id)

    def add_exception(
        self,
        provider_id: str,
        requestor_id: str,
        exception_date: date,
        exception_type: ExceptionType,
        *,
        start_time: time | None = None,
        end_time: time | None = None,
        break_start_time: time | None = None,
        break_end_time: time | None = None,
        slot_duration: int | None = None,
        notes: str | None = None,
    ) -> ScheduleException:
        self._require_provider(provider_id, requestor_id)
        exception_type = ExceptionType(exception_type)

        if exception_type is ExceptionType.CUSTOM_HOURS:
            if slot_duration is None:
                weekly = self.load_weekly(provider_id).get(Weekday.from_date(exception_date))
                effective_duration = weekly.slot_duration if weekly is not None else config.DEFAULT_SLOT_DURATION
            else:
                effective_duration = slot_duration
            validate_day_rules(start_time, end_time, break_start_time, break_end_time, effective_duration)
        else:
            start_time = end_time = break_start_time = break_end_time = None
            slot_duration = None

        existing = self.db.query(ScheduleException).filter(
            ScheduleException.provider_id == provider_id,
            ScheduleException.exception_date == exception_date,
        ).first()
        if existing:
            raise Conflict(f'An exception already exists for {exception_date.isoformat()}.')

        exception = ScheduleException(
            provider_id=provider_id,
            exception_date=exception_date,
            exception_type=exception_type.value,
            start_time=start_time,
            end_time=end_time,
            break_start_time=break_start_time,
            break_end_time=break_end_time,
            slot_duration=slot_duration,
            notes=notes,
        )
        self.db.add(exception)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise Conflict(f'An exception already exists for {exception_date.isoformat()}.') from exc

        self.db.refresh(exception)
        logger.info('Provider %s added %s exception on %s', provider_id, exception_type.value, exception_date)
        return exception

    def delete_exception(self, provider_id: str, requestor_id: str, exception_id: int) -> None:
        self._require_provider(provider_id, requestor_id)

        exception = self.db.query(ScheduleException).filter(
            ScheduleException.id == exception_id,
            ScheduleException.provider_id == provider_id,
        ).first()
        if not exception:
            raise NotFound('Schedule exception not found.')

        self.db.delete(exception)
        self.db.commit()
        logger.info('Provider %s removed exception %s', provider_id, exception_id)

    def block_slot(
        self,
        provider_id: str,
        requestor_id: str,
        slot_date: date,
        start_time: time,
        reason: str | None = None,
    ) -> BlockedSlot:
        self._require_provider(provider_id, requestor_id)

        slot = next(
            (
                candidate
                for candidate in self.generated_slots(provider_id, slot_date, slot_date)
                if candidate.start_time == start_time
            ),
            None,
        )
        if slot is None:
            raise NotAvailable('There is no slot at this time to block.')

        already_blocked = self.db.query(BlockedSlot).filter(
            BlockedSlot.provider_id == provider_id,
            BlockedSlot.slot_date == slot_date,
            BlockedSlot.start_time == start_time,
        ).first()
        if already_blocked:
            raise Conflict('This time is already blocked.')

        booked = overlapping_appointments(
            self.db.query(Appointment.id), provider_id, slot_date, slot.start_time, slot.end_time
        ).first()
        if booked:
            raise Conflict('This time is already booked by an appointment.')

        blocked_slot = BlockedSlot(
            provider_id=provider_id,
            slot_date=slot_date,
            start_time=start_time,
            reason=reason,
        )
        self.db.add(blocked_slot)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise Conflict('This time is already blocked.') from exc

        self.db.refresh(blocked_slot)
        return blocked_slot

    def unblock_slot(self, provider_id: str, requestor_id: str, blocked_slot_id: int) -> None:
        self._require_provider(provider_id, requestor_id)

        blocked_slot = self.db.query(BlockedSlot).filter(
            BlockedSlot.id == blocked_slot_id,
            BlockedSlot.provider_id == provider_id,
        ).first()
        if not blocked_slot:
            raise NotFound('Blocked time not found.')

        self.db.delete(blocked_slot)
        self.db.commit()

    def regenerate_slots(
        self,
        provider_id: str,
        start_date: date | None = None,
        days: int | None = None,
    ) -> dict[date, int]:
        """Recompute the slot count for each date from ``start_date`` on.

        Nothing is stored: the result reflects the committed schedule as of
        this call and is what the availability endpoints will serve.
        """
        start_date = start_date or date.today()
        days = config.SLOT_REGENERATION_DAYS if days is None else days
        if days < 0:
            raise ValidationError('Days must not be negative.')
        end_date = start_date + timedelta(days=days)

        counts = {day: 0 for day in iterate_days(start_date, end_date)}
        for slot in self.generated_slots(provider_id, start_date, end_date):
            counts[slot.date] += 1

        logger.debug('Regenerated %d slots for provider %s', sum(counts.values()), provider_id)
        return counts

    # ---------------------------------------------------------------- helpers

    def _apply_day(
        self,
        provider_id: str,
        weekday: Weekday,
        *,
        is_working: bool,
        start_time: time | None = None,
        end_time: time | None = None,
        break_start_time: time | None = None,
        break_end_time: time | None = None,
        slot_duration: int | None = None,
    ) -> WeeklySchedule:
        slot_duration = slot_duration or config.DEFAULT_SLOT_DURATION

        if is_working:
            validate_day_rules(start_time, end_time, break_start_time, break_end_time, slot_duration)

        row = self.db.query(WeeklySchedule).filter(
            WeeklySchedule.provider_id == provider_id,
            WeeklySchedule.day_of_week == int(weekday),
        ).first()
        if row is None:
            row = default_day(provider_id, weekday)
            self.db.add(row)

        row.is_working = is_working
        row.start_time = start_time or row.start_time
        row.end_time = end_time or row.end_time
        row.break_start_time = break_start_time
        row.break_end_time = break_end_time
        row.slot_duration = slot_duration
        return row

    @staticmethod
    def _require_provider(provider_id: str, requestor_id: str) -> None:
        if not requestor_id or requestor_id != provider_id:
            raise Unauthorized('Only the provider can change this schedule.')

