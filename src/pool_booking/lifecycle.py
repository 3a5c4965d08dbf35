from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime
from typing import Any, TypeVar

from aws_lambda_powertools import Logger

from .availability import check_availability, describe_conflicts
from .config import Settings
from .errors import ConflictError, NotFoundError, ReservationError, StaleWriteError, ValidationError
from .models import (
    AvailabilityResult,
    Reservation,
    ReservationFilter,
    ReservationStatus,
    ReservationView,
    Resource,
    to_utc,
    utcnow,
)
from .policy import validate_and_check
from .ports import AbstractUnitOfWork, ReservationStore
from .queries import ReservationQueries
from .results import Failure, Result, Success
from .state_machine import ReservationAction, next_status

logger = Logger()

T = TypeVar("T")

BOOKING_REQUEST_TYPE = "BOOKING_REQUEST"
BOOKING_REQUEST_TITLE = "Booking Request"
UNKNOWN_TENANT_NAME = "A tenant"


class ReservationService:
    """Create, approve, deny and cancel reservations against a store.

    Every mutation runs in one unit of work scoped to the reservation's
    resource. Operations report the outcome as a ``Success`` or ``Failure``
    result instead of raising; only infrastructure errors propagate.
    """

    def __init__(
        self,
        store: ReservationStore,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._settings = settings or Settings()
        self._clock = clock or utcnow
        self._queries = ReservationQueries(store)

    # Reads

    def check_availability(
        self,
        resource_id: str,
        start: datetime,
        end: datetime,
        exclude_reservation_id: str | None = None,
    ) -> Result[AvailabilityResult]:
        start, end = to_utc(start), to_utc(end)
        if start >= end:
            return Failure(ValidationError("End time must be after start time"))
        return Success(
            check_availability(self._store.reservations, resource_id, start, end, exclude_reservation_id)
        )

    def get(self, reservation_id: str) -> Result[ReservationView]:
        view = self._queries.get(reservation_id)
        if view is None:
            return Failure(NotFoundError(f"Reservation {reservation_id} not found"))
        return Success(view)

    def list(self, filter: ReservationFilter | None = None) -> list[ReservationView]:
        return self._queries.list(filter)

    # Mutations

    def create(
        self,
        resource_id: str,
        tenant_id: str,
        start: datetime,
        end: datetime,
        requested_by: str,
        activity_id: str | None = None,
        notes: str | None = None,
    ) -> Result[Reservation]:
        start, end = to_utc(start), to_utc(end)

        def operation() -> Reservation:
            with self._store.unit_of_work(resource_id) as uow:
                now = self._clock()
                resource = validate_and_check(
                    uow.reservations,
                    self._store.directory,
                    resource_id,
                    start,
                    end,
                    now,
                    self._settings.default_booking_window_days,
                )
                reservation = Reservation(
                    reservation_id=str(uuid.uuid4()),
                    resource_id=resource_id,
                    tenant_id=tenant_id,
                    activity_id=activity_id,
                    start_time=start,
                    end_time=end,
                    requested_by=requested_by,
                    notes=notes,
                    status=ReservationStatus.PENDING,
                    created_at=now,
                )
                uow.reservations.add(reservation)
                self._notify_admins(uow, resource, reservation)
            logger.info(
                "Created reservation",
                extra={"reservation_id": reservation.reservation_id, "resource_id": resource_id},
            )
            return reservation

        return self._run("create", operation, resource_id=resource_id, tenant_id=tenant_id)

    def approve(self, reservation_id: str, approved_by: str) -> Result[Reservation]:
        return self._transition(reservation_id, ReservationAction.APPROVE, {"approved_by": approved_by})

    def deny(self, reservation_id: str, denied_by: str, reason: str | None = None) -> Result[Reservation]:
        return self._transition(
            reservation_id,
            ReservationAction.DENY,
            {"denied_by": denied_by, "denial_reason": reason},
        )

    def cancel(self, reservation_id: str, cancelled_by: str) -> Result[Reservation]:
        return self._transition(reservation_id, ReservationAction.CANCEL, {"cancelled_by": cancelled_by})

    # Internals

    def _transition(
        self, reservation_id: str, action: ReservationAction, changes: dict[str, Any]
    ) -> Result[Reservation]:
        def operation() -> Reservation:
            located = self._store.reservations.get(reservation_id)
            if located is None:
                raise NotFoundError(f"Reservation {reservation_id} not found")
            with self._store.unit_of_work(located.resource_id) as uow:
                reservation = uow.reservations.get(reservation_id)
                if reservation is None:
                    raise NotFoundError(f"Reservation {reservation_id} not found")
                target = next_status(reservation.status, action)
                if action is ReservationAction.APPROVE:
                    self._recheck(uow, reservation)
                updated = reservation.model_copy(update={"status": target, **changes})
                uow.reservations.update(updated)
            logger.info(
                "Reservation status changed",
                extra={
                    "reservation_id": reservation_id,
                    "from_status": reservation.status.value,
                    "to_status": target.value,
                },
            )
            return updated

        return self._run(action.value, operation, reservation_id=reservation_id)

    def _recheck(self, uow: AbstractUnitOfWork, reservation: Reservation) -> None:
        # Another reservation may have been approved for this window since creation.
        # The request stays PENDING for an administrator to resolve.
        result = check_availability(
            uow.reservations,
            reservation.resource_id,
            reservation.start_time,
            reservation.end_time,
            exclude_reservation_id=reservation.reservation_id,
        )
        if not result.available:
            raise ConflictError(
                "Time slot is no longer available",
                describe_conflicts(self._store.directory, result.conflicts),
            )

    def _notify_admins(self, uow: AbstractUnitOfWork, resource: Resource, reservation: Reservation) -> None:
        if resource.owner_scope_id is None:
            return
        directory = self._store.directory
        admins = directory.resolve_admins(resource.owner_scope_id)
        tenant_name = directory.resolve_tenant_name(reservation.tenant_id) or UNKNOWN_TENANT_NAME
        link_url = self._settings.requests_link_template.format(
            owner_scope_id=resource.owner_scope_id,
            resource_id=resource.resource_id,
            reservation_id=reservation.reservation_id,
            tenant_id=reservation.tenant_id,
        )
        message = f"{tenant_name} requested to book {resource.display_name}"
        for user_id in admins:
            uow.notifications.enqueue(
                user_id,
                BOOKING_REQUEST_TYPE,
                BOOKING_REQUEST_TITLE,
                message,
                link_url,
                tenant_id=reservation.tenant_id,
                reservation_id=reservation.reservation_id,
            )
        logger.info(
            "Queued approval requests",
            extra={"reservation_id": reservation.reservation_id, "admin_count": len(admins)},
        )

    def _run(self, operation: str, fn: Callable[[], T], **context: Any) -> Result[T]:
        attempts = self._settings.max_transaction_attempts
        for attempt in range(1, attempts + 1):
            try:
                return Success(fn())
            except StaleWriteError:
                logger.warning(
                    "Concurrent write on resource, retrying",
                    extra={"operation": operation, "attempt": attempt, **context},
                )
            except ReservationError as exc:
                logger.info(
                    "Reservation operation rejected",
                    extra={"operation": operation, "error": exc.code, "reason": exc.message, **context},
                )
                return Failure(exc)
        return Failure(ConflictError("The resource was modified concurrently, please retry"))
