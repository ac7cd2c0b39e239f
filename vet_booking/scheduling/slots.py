"""
Slot generation.

Turns a provider's weekly rules and date exceptions into discrete,
fixed-length time slots. Everything here is pure: callers load the rows
and pass them in, nothing touches the database.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, Mapping

from vet_booking.core import config
from vet_booking.core.exceptions import ValidationError
from vet_booking.models.schedule import ExceptionType, ScheduleException, Weekday, WeeklySchedule


@dataclass(frozen=True)
class DayRules:
    """Effective working window for one date."""
    start_time: time
    end_time: time
    slot_duration: int
    break_start_time: time | None = None
    break_end_time: time | None = None

    @property
    def has_break(self) -> bool:
        return self.break_start_time is not None and self.break_end_time is not None

    def working_segments(self) -> list[tuple[time, time]]:
        """The working window with the break cut out."""
        if not self.has_break:
            return [(self.start_time, self.end_time)]
        segments = [(self.start_time, self.break_start_time), (self.break_end_time, self.end_time)]
        return [(start, end) for start, end in segments if start < end]


@dataclass
class TimeSlot:
    provider_id: str
    date: date
    start_time: time
    end_time: time
    is_booked: bool = False
    is_blocked: bool = False
    appointment_id: int | None = None

    @property
    def is_available(self) -> bool:
        return not self.is_booked and not self.is_blocked


def validate_day_rules(
    start_time: time | None,
    end_time: time | None,
    break_start_time: time | None,
    break_end_time: time | None,
    slot_duration: int | None,
) -> None:
    """Raise ValidationError unless the window, break and duration are coherent."""
    if start_time is None or end_time is None:
        raise ValidationError('Start and end times are required for working hours.')
    if start_time >= end_time:
        raise ValidationError('Start time must be before end time.')
    if slot_duration not in config.ALLOWED_SLOT_DURATIONS:
        allowed = ', '.join(str(value) for value in config.ALLOWED_SLOT_DURATIONS)
        raise ValidationError(f'Slot duration must be one of: {allowed} minutes.')

    if (break_start_time is None) != (break_end_time is None):
        raise ValidationError('Break start and break end must be provided together.')
    if break_start_time is not None:
        if break_start_time >= break_end_time:
            raise ValidationError('Break start must be before break end.')
        if break_start_time < start_time or break_end_time > end_time:
            raise ValidationError('Break must fall within working hours.')


def resolve_day_rules(
    day: date,
    weekly: WeeklySchedule | None,
    exception: ScheduleException | None = None,
) -> DayRules | None:
    """Pick the rules governing ``day``, or None when nothing is bookable.

    An exception always wins over the weekly entry for its date.
    """
    if exception is not None:
        if exception.exception_type == ExceptionType.CLOSED.value:
            return None

        slot_duration = exception.slot_duration
        if slot_duration is None:
            slot_duration = weekly.slot_duration if weekly is not None else config.DEFAULT_SLOT_DURATION

        return DayRules(
            start_time=exception.start_time,
            end_time=exception.end_time,
            slot_duration=slot_duration,
            break_start_time=exception.break_start_time,
            break_end_time=exception.break_end_time,
        )

    if weekly is None or not weekly.is_working:
        return None

    return DayRules(
        start_time=weekly.start_time,
        end_time=weekly.end_time,
        slot_duration=weekly.slot_duration,
        break_start_time=weekly.break_start_time,
        break_end_time=weekly.break_end_time,
    )


def partition_day(provider_id: str, day: date, rules: DayRules) -> list[TimeSlot]:
    """Cut each working segment into consecutive slots.

    The grid restarts after the break. A window that would run past the end
    of its segment is dropped rather than truncated, so no slot ever clips
    the break or closing time.
    """
    slots: list[TimeSlot] = []
    step = timedelta(minutes=rules.slot_duration)

    for segment_start, segment_end in rules.working_segments():
        current_start = datetime.combine(day, segment_start)
        limit = datetime.combine(day, segment_end)

        while current_start + step <= limit:
            current_end = current_start + step
            slots.append(
                TimeSlot(
                    provider_id=provider_id,
                    date=day,
                    start_time=current_start.time(),
                    end_time=current_end.time(),
                )
            )
            current_start = current_end

    return slots


def iterate_days(start_date: date, end_date: date) -> Iterable[date]:
    current = start_date
    while current <= end_date:
        yield current
        current += timedelta(days=1)


def generate_slots(
    provider_id: str,
    start_date: date,
    end_date: date,
    weekly: Mapping[Weekday, WeeklySchedule],
    exceptions: Mapping[date, ScheduleException],
) -> list[TimeSlot]:
    """Generate every candidate slot for ``provider_id`` between two dates, inclusive.

    ``weekly`` maps each weekday to its schedule row; missing weekdays are
    treated as days off. ``exceptions`` maps dates to their override.
    """
    if end_date < start_date:
        raise ValidationError('End date must not be before start date.')

    slots: list[TimeSlot] = []
    for day in iterate_days(start_date, end_date):
        rules = resolve_day_rules(day, weekly.get(Weekday.from_date(day)), exceptions.get(day))
        if rules is None:
            continue
        slots.extend(partition_day(provider_id, day, rules))

    return slots
