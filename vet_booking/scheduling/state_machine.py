"""
Appointment status transitions.

    scheduled -> confirmed -> in-progress -> completed
    scheduled | confirmed -> cancelled
    confirmed -> scheduled          (reschedule only)

Authorization is checked before the transition itself so that a stranger
poking at a completed appointment gets Unauthorized, not IllegalTransition.
"""

from enum import Enum

from vet_booking.core.exceptions import IllegalTransition, Unauthorized
from vet_booking.models.appointment import Appointment, AppointmentStatus


class Actor(str, Enum):
    OWNER = 'owner'
    PROVIDER = 'provider'
    RESCHEDULE = 'reschedule'


_S = AppointmentStatus

TRANSITIONS: dict[AppointmentStatus, set[AppointmentStatus]] = {
    _S.SCHEDULED: {_S.CONFIRMED, _S.CANCELLED},
    _S.CONFIRMED: {_S.IN_PROGRESS, _S.COMPLETED, _S.CANCELLED},
    _S.IN_PROGRESS: {_S.COMPLETED},
    _S.COMPLETED: set(),
    _S.CANCELLED: set(),
}

RESCHEDULABLE = {_S.SCHEDULED, _S.CONFIRMED}

ALLOWED_ACTORS: dict[AppointmentStatus, set[Actor]] = {
    _S.CONFIRMED: {Actor.PROVIDER},
    _S.IN_PROGRESS: {Actor.PROVIDER},
    _S.COMPLETED: {Actor.PROVIDER},
    _S.CANCELLED: {Actor.OWNER, Actor.PROVIDER},
    _S.SCHEDULED: {Actor.RESCHEDULE},
}


def resolve_actor(appointment: Appointment, requestor_id: str) -> Actor | None:
    if requestor_id and requestor_id == appointment.provider_id:
        return Actor.PROVIDER
    if requestor_id and requestor_id == appointment.owner_id:
        return Actor.OWNER
    return None


def require_participant(appointment: Appointment, requestor_id: str) -> Actor:
    actor = resolve_actor(appointment, requestor_id)
    if actor is None:
        raise Unauthorized('Only the pet owner or the assigned provider can access this appointment.')
    return actor


def require_provider(appointment: Appointment, requestor_id: str) -> None:
    if resolve_actor(appointment, requestor_id) is not Actor.PROVIDER:
        raise Unauthorized('Only the assigned provider can perform this action.')


def can_transition(current: AppointmentStatus, target: AppointmentStatus, actor: Actor) -> bool:
    if actor not in ALLOWED_ACTORS.get(target, set()):
        return False
    if actor is Actor.RESCHEDULE:
        return current in RESCHEDULABLE
    return target in TRANSITIONS[current]


def check_transition(appointment: Appointment, target: AppointmentStatus, actor: Actor) -> None:
    current = AppointmentStatus(appointment.status)

    if actor not in ALLOWED_ACTORS.get(target, set()):
        raise Unauthorized(f'{actor.value.capitalize()} cannot move an appointment to {target.value!r}.')

    if not can_transition(current, target, actor):
        raise IllegalTransition(f'Cannot change appointment status from {current.value!r} to {target.value!r}.')


def check_reschedulable(appointment: Appointment) -> None:
    current = AppointmentStatus(appointment.status)
    if current not in RESCHEDULABLE:
        raise IllegalTransition(f'Appointments in status {current.value!r} cannot be rescheduled.')
