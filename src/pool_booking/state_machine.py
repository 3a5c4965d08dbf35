from __future__ import annotations

from enum import Enum

from .errors import InvalidStateError
from .models import ReservationStatus


class ReservationAction(str, Enum):
    APPROVE = "approve"
    DENY = "deny"
    CANCEL = "cancel"


# Every status has an entry; DENIED and CANCELLED have no way out.
TRANSITIONS: dict[ReservationStatus, dict[ReservationAction, ReservationStatus]] = {
    ReservationStatus.PENDING: {
        ReservationAction.APPROVE: ReservationStatus.APPROVED,
        ReservationAction.DENY: ReservationStatus.DENIED,
        ReservationAction.CANCEL: ReservationStatus.CANCELLED,
    },
    ReservationStatus.APPROVED: {
        ReservationAction.CANCEL: ReservationStatus.CANCELLED,
    },
    ReservationStatus.DENIED: {},
    ReservationStatus.CANCELLED: {},
}


def next_status(current: ReservationStatus, action: ReservationAction) -> ReservationStatus:
    target = TRANSITIONS[current].get(action)
    if target is None:
        raise InvalidStateError(f"Cannot {action.value} a reservation that is {current.value}")
    return target
