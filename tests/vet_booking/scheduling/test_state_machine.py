from datetime import date, time

import pytest

from vet_booking.core.exceptions import IllegalTransition, Unauthorized
from vet_booking.models.appointment import Appointment, AppointmentStatus
from vet_booking.scheduling.state_machine import (
    Actor,
    can_transition,
    check_reschedulable,
    check_transition,
    require_participant,
    require_provider,
    resolve_actor,
)


def _appointment(status: AppointmentStatus = AppointmentStatus.SCHEDULED) -> Appointment:
    return Appointment(
        id=1,
        pet_id='pet-1',
        owner_id='owner-1',
        provider_id='vet-1',
        date=date(2026, 1, 5),
        start_time=time(9, 0),
        end_time=time(9, 30),
        reason='Vaccination',
        status=status.value,
    )


def test_resolve_actor_identifies_owner_and_provider() -> None:
    appointment = _appointment()

    assert resolve_actor(appointment, 'vet-1') is Actor.PROVIDER
    assert resolve_actor(appointment, 'owner-1') is Actor.OWNER
    assert resolve_actor(appointment, 'someone-else') is None
    assert resolve_actor(appointment, '') is None


def test_require_participant_rejects_strangers() -> None:
    with pytest.raises(Unauthorized) as exception_info:
        require_participant(_appointment(), 'owner-2')

    assert exception_info.value.message == 'Only the pet owner or the assigned provider can access this appointment.'


def test_require_provider_rejects_owner() -> None:
    with pytest.raises(Unauthorized):
        require_provider(_appointment(), 'owner-1')


@pytest.mark.parametrize(
    ('current', 'target', 'actor'),
    [
        (AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED, Actor.PROVIDER),
        (AppointmentStatus.SCHEDULED, AppointmentStatus.CANCELLED, Actor.OWNER),
        (AppointmentStatus.SCHEDULED, AppointmentStatus.CANCELLED, Actor.PROVIDER),
        (AppointmentStatus.CONFIRMED, AppointmentStatus.IN_PROGRESS, Actor.PROVIDER),
        (AppointmentStatus.CONFIRMED, AppointmentStatus.COMPLETED, Actor.PROVIDER),
        (AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED, Actor.OWNER),
        (AppointmentStatus.IN_PROGRESS, AppointmentStatus.COMPLETED, Actor.PROVIDER),
        (AppointmentStatus.CONFIRMED, AppointmentStatus.SCHEDULED, Actor.RESCHEDULE),
    ],
)
def test_allowed_transitions(current, target, actor) -> None:
    assert can_transition(current, target, actor)
    check_transition(_appointment(current), target, actor)


@pytest.mark.parametrize(
    ('current', 'target'),
    [
        (AppointmentStatus.SCHEDULED, AppointmentStatus.COMPLETED),
        (AppointmentStatus.SCHEDULED, AppointmentStatus.IN_PROGRESS),
        (AppointmentStatus.IN_PROGRESS, AppointmentStatus.CANCELLED),
        (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED),
        (AppointmentStatus.CANCELLED, AppointmentStatus.CONFIRMED),
        (AppointmentStatus.COMPLETED, AppointmentStatus.CONFIRMED),
    ],
)
def test_illegal_transitions_raise(current, target) -> None:
    with pytest.raises(IllegalTransition) as exception_info:
        check_transition(_appointment(current), target, Actor.PROVIDER)

    assert exception_info.value.message == (
        f'Cannot change appointment status from {current.value!r} to {target.value!r}.'
    )


def test_terminal_states_have_no_exits() -> None:
    for terminal in (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED):
        for target in AppointmentStatus:
            for actor in Actor:
                assert not can_transition(terminal, target, actor)


@pytest.mark.parametrize(
    'target',
    [AppointmentStatus.CONFIRMED, AppointmentStatus.IN_PROGRESS, AppointmentStatus.COMPLETED],
)
def test_owner_cannot_drive_provider_transitions(target) -> None:
    with pytest.raises(Unauthorized):
        check_transition(_appointment(AppointmentStatus.CONFIRMED), target, Actor.OWNER)


def test_plain_actors_cannot_move_back_to_scheduled() -> None:
    with pytest.raises(Unauthorized):
        check_transition(_appointment(AppointmentStatus.CONFIRMED), AppointmentStatus.SCHEDULED, Actor.PROVIDER)


@pytest.mark.parametrize('status', [AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED])
def test_open_appointments_are_reschedulable(status) -> None:
    check_reschedulable(_appointment(status))


@pytest.mark.parametrize(
    'status',
    [AppointmentStatus.IN_PROGRESS, AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED],
)
def test_closed_appointments_are_not_reschedulable(status) -> None:
    with pytest.raises(IllegalTransition):
        check_reschedulable(_appointment(status))
