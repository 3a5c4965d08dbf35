from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field, model_validator


def to_utc(dt: datetime) -> datetime:
    # Naive datetimes are taken to be UTC
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def utcnow() -> datetime:
    return datetime.now(UTC)


class ReservationStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DENIED = "DENIED"
    CANCELLED = "CANCELLED"

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_STATUSES


ACTIVE_STATUSES = frozenset({ReservationStatus.PENDING, ReservationStatus.APPROVED})


class Resource(BaseModel):
    resource_id: str
    display_name: str
    owner_scope_id: str | None = None
    # True when the owner scope itself operates the resource
    owner_operated: bool = False
    poolable: bool = False
    booking_window_days: int | None = Field(default=None, ge=0)

    @property
    def bookable(self) -> bool:
        return self.owner_operated or self.poolable


class Reservation(BaseModel):
    reservation_id: str
    resource_id: str
    tenant_id: str
    activity_id: str | None = None
    start_time: datetime
    end_time: datetime
    requested_by: str
    notes: str | None = None
    status: ReservationStatus = ReservationStatus.PENDING
    denial_reason: str | None = None
    approved_by: str | None = None
    denied_by: str | None = None
    cancelled_by: str | None = None
    created_at: datetime

    @model_validator(mode="after")
    def _check_interval(self) -> Reservation:
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return self.start_time < end and self.end_time > start


class Conflict(BaseModel):
    reservation_id: str
    tenant_id: str
    tenant_name: str | None = None
    start_time: datetime
    end_time: datetime
    status: ReservationStatus


class AvailabilityResult(BaseModel):
    available: bool
    conflicts: list[Reservation] = Field(default_factory=list)


class ReservationFilter(BaseModel):
    resource_id: str | None = None
    tenant_id: str | None = None
    owner_scope_id: str | None = None
    statuses: list[ReservationStatus] | None = None
    from_date: datetime | None = None
    to_date: datetime | None = None

    def matches(self, reservation: Reservation) -> bool:
        """Apply every field except ``owner_scope_id``, which needs the directory."""
        if self.resource_id is not None and reservation.resource_id != self.resource_id:
            return False
        if self.tenant_id is not None and reservation.tenant_id != self.tenant_id:
            return False
        if self.statuses and reservation.status not in self.statuses:
            return False
        if self.from_date is not None and reservation.start_time < to_utc(self.from_date):
            return False
        if self.to_date is not None and reservation.end_time > to_utc(self.to_date):
            return False
        return True


class ReservationView(Reservation):
    resource_name: str | None = None
    owner_scope_id: str | None = None
    tenant_name: str | None = None
    activity_name: str | None = None


class Notification(BaseModel):
    notification_id: str
    user_id: str
    tenant_id: str
    notification_type: str
    title: str
    message: str
    link_url: str
    reservation_id: str | None = None
    created_at: datetime


# HTTP payloads


class ReservationCreate(BaseModel):
    resource_id: str = Field(..., min_length=1)
    tenant_id: str = Field(..., min_length=1)
    start_time: datetime
    end_time: datetime
    requested_by: str = Field(..., min_length=1)
    activity_id: str | None = None
    notes: str | None = Field(default=None, max_length=500)


class ReservationDecision(BaseModel):
    actor: str = Field(..., min_length=1)
    # only read by deny
    reason: str | None = Field(default=None, max_length=500)
