from __future__ import annotations

import pytest

from pool_booking.errors import InvalidStateError
from pool_booking.models import ReservationStatus
from pool_booking.state_machine import TRANSITIONS, ReservationAction, next_status

ALLOWED = {
    (ReservationStatus.PENDING, ReservationAction.APPROVE): ReservationStatus.APPROVED,
    (ReservationStatus.PENDING, ReservationAction.DENY): ReservationStatus.DENIED,
    (ReservationStatus.PENDING, ReservationAction.CANCEL): ReservationStatus.CANCELLED,
    (ReservationStatus.APPROVED, ReservationAction.CANCEL): ReservationStatus.CANCELLED,
}


def test_every_status_has_a_transition_entry() -> None:
    assert set(TRANSITIONS) == set(ReservationStatus)


@pytest.mark.parametrize("status", list(ReservationStatus))
@pytest.mark.parametrize("action", list(ReservationAction))
def test_transition_table(status: ReservationStatus, action: ReservationAction) -> None:
    expected = ALLOWED.get((status, action))
    if expected is None:
        with pytest.raises(InvalidStateError):
            next_status(status, action)
    else:
        assert next_status(status, action) is expected


@pytest.mark.parametrize("status", [ReservationStatus.DENIED, ReservationStatus.CANCELLED])
def test_terminal_states_are_absorbing(status: ReservationStatus) -> None:
    assert TRANSITIONS[status] == {}
