from __future__ import annotations

from datetime import datetime
from functools import lru_cache
from typing import Any, TypeVar

from aws_lambda_powertools import Logger, Tracer
from aws_lambda_powertools.metrics import Metrics, MetricUnit
from fastapi import Depends, FastAPI, HTTPException, Query

from pool_booking import dal
from pool_booking.config import Settings
from pool_booking.errors import ConflictError, InvalidStateError, NotFoundError, ReservationError, ValidationError
from pool_booking.lifecycle import ReservationService
from pool_booking.memory import InMemoryStore
from pool_booking.models import (
    AvailabilityResult,
    Reservation,
    ReservationCreate,
    ReservationDecision,
    ReservationFilter,
    ReservationStatus,
    ReservationView,
)
from pool_booking.ports import ReservationStore
from pool_booking.results import Result

logger = Logger()
tracer = Tracer()
metrics = Metrics(namespace="PoolBooking")

app = FastAPI(title="Pool Booking API", version="0.1.0")

T = TypeVar("T")

_HTTP_STATUS: dict[type[ReservationError], int] = {
    ValidationError: 400,
    NotFoundError: 404,
    InvalidStateError: 409,
    ConflictError: 409,
}


@lru_cache(maxsize=1)
def get_store() -> ReservationStore:
    settings = Settings.from_env()
    if settings.store_backend == "memory":
        return InMemoryStore()
    return dal.DynamoStore()


def get_service() -> ReservationService:
    return ReservationService(get_store(), Settings.from_env())


def _error_detail(error: ReservationError) -> dict[str, Any]:
    detail: dict[str, Any] = {"error": error.code, "message": error.message}
    if isinstance(error, ConflictError):
        detail["conflicts"] = [c.model_dump(mode="json") for c in error.conflicts]
    return detail


def _unwrap(result: Result[T], operation: str) -> T:
    if result.ok:
        return result.value
    error = result.error
    if isinstance(error, ConflictError):
        metrics.add_metric(name=f"{operation}Conflict", value=1, unit=MetricUnit.Count)
    raise HTTPException(status_code=_HTTP_STATUS.get(type(error), 400), detail=_error_detail(error))


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@tracer.capture_method
@app.post("/reservations", response_model=Reservation, status_code=201)
def create_reservation(
    payload: ReservationCreate, service: ReservationService = Depends(get_service)
) -> Reservation:
    result = service.create(
        resource_id=payload.resource_id,
        tenant_id=payload.tenant_id,
        start=payload.start_time,
        end=payload.end_time,
        requested_by=payload.requested_by,
        activity_id=payload.activity_id,
        notes=payload.notes,
    )
    reservation = _unwrap(result, "CreateReservation")
    metrics.add_metric(name="ReservationCreated", value=1, unit=MetricUnit.Count)
    return reservation


@tracer.capture_method
@app.get("/reservations", response_model=list[ReservationView])
def list_reservations(
    resource_id: str | None = None,
    tenant_id: str | None = None,
    owner_scope_id: str | None = None,
    status: list[ReservationStatus] | None = Query(default=None),
    from_date: datetime | None = None,
    to_date: datetime | None = None,
    service: ReservationService = Depends(get_service),
) -> list[ReservationView]:
    return service.list(
        ReservationFilter(
            resource_id=resource_id,
            tenant_id=tenant_id,
            owner_scope_id=owner_scope_id,
            statuses=status,
            from_date=from_date,
            to_date=to_date,
        )
    )


@tracer.capture_method
@app.get("/reservations/{reservation_id}", response_model=ReservationView)
def get_reservation(reservation_id: str, service: ReservationService = Depends(get_service)) -> ReservationView:
    return _unwrap(service.get(reservation_id), "GetReservation")


@tracer.capture_method
@app.post("/reservations/{reservation_id}/approve", response_model=Reservation)
def approve_reservation(
    reservation_id: str, payload: ReservationDecision, service: ReservationService = Depends(get_service)
) -> Reservation:
    reservation = _unwrap(service.approve(reservation_id, payload.actor), "ApproveReservation")
    metrics.add_metric(name="ReservationApproved", value=1, unit=MetricUnit.Count)
    return reservation


@tracer.capture_method
@app.post("/reservations/{reservation_id}/deny", response_model=Reservation)
def deny_reservation(
    reservation_id: str, payload: ReservationDecision, service: ReservationService = Depends(get_service)
) -> Reservation:
    reservation = _unwrap(service.deny(reservation_id, payload.actor, payload.reason), "DenyReservation")
    metrics.add_metric(name="ReservationDenied", value=1, unit=MetricUnit.Count)
    return reservation


@tracer.capture_method
@app.post("/reservations/{reservation_id}/cancel", response_model=Reservation)
def cancel_reservation(
    reservation_id: str, payload: ReservationDecision, service: ReservationService = Depends(get_service)
) -> Reservation:
    reservation = _unwrap(service.cancel(reservation_id, payload.actor), "CancelReservation")
    metrics.add_metric(name="ReservationCancelled", value=1, unit=MetricUnit.Count)
    return reservation


@tracer.capture_method
@app.get("/resources/{resource_id}/availability", response_model=AvailabilityResult)
def resource_availability(
    resource_id: str,
    start: datetime,
    end: datetime,
    exclude_reservation_id: str | None = None,
    service: ReservationService = Depends(get_service),
) -> AvailabilityResult:
    return _unwrap(
        service.check_availability(resource_id, start, end, exclude_reservation_id),
        "CheckAvailability",
    )
