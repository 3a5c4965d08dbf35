from __future__ import annotations

from datetime import datetime, timedelta

from aws_lambda_powertools import Logger

from .availability import check_availability, describe_conflicts
from .errors import ConflictError, NotFoundError, ValidationError
from .models import Resource
from .ports import Directory, ReservationRepository

logger = Logger()

DEFAULT_BOOKING_WINDOW_DAYS = 30


def booking_window_days(resource: Resource, default_window_days: int) -> int:
    if resource.booking_window_days is None:
        return default_window_days
    return resource.booking_window_days


def validate_and_check(
    repo: ReservationRepository,
    directory: Directory,
    resource_id: str,
    start: datetime,
    end: datetime,
    now: datetime,
    default_window_days: int = DEFAULT_BOOKING_WINDOW_DAYS,
) -> Resource:
    """Check that a new reservation of ``resource_id`` over ``[start, end)`` may exist.

    Returns the resolved resource. Raises ValidationError for a malformed
    interval, an ineligible resource or a start beyond the booking horizon,
    NotFoundError for an unknown resource, and ConflictError when active
    reservations already hold part of the interval.
    """
    if start >= end:
        raise ValidationError("End time must be after start time")

    resource = directory.resolve_resource(resource_id)
    if resource is None:
        raise NotFoundError(f"Resource {resource_id} not found")
    if not resource.bookable:
        raise ValidationError(f"Resource {resource.display_name} is not available for booking")

    window = booking_window_days(resource, default_window_days)
    horizon = now + timedelta(days=window)
    # start == horizon is still bookable
    if start > horizon:
        raise ValidationError(f"Cannot book more than {window} days in advance")

    result = check_availability(repo, resource_id, start, end)
    if not result.available:
        logger.info(
            "Requested interval is taken",
            extra={"resource_id": resource_id, "conflict_count": len(result.conflicts)},
        )
        raise ConflictError(
            "Resource not available for selected time",
            describe_conflicts(directory, result.conflicts),
        )
    return resource
