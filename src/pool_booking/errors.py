from __future__ import annotations

from typing import ClassVar

from .models import Conflict


class ReservationError(Exception):
    """Base of the errors a reservation operation can report to its caller."""

    code: ClassVar[str] = "reservation_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ReservationError):
    code = "validation_error"


class NotFoundError(ReservationError):
    code = "not_found"


class InvalidStateError(ReservationError):
    code = "invalid_state"


class ConflictError(ReservationError):
    code = "conflict"

    def __init__(self, message: str, conflicts: list[Conflict] | None = None) -> None:
        super().__init__(message)
        self.conflicts: list[Conflict] = list(conflicts or [])


class StaleWriteError(Exception):
    """A unit of work lost a race on commit; the operation may be retried."""
