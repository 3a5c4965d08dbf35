from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from .models import ACTIVE_STATUSES, AvailabilityResult, Conflict, Reservation
from .ports import Directory, ReservationRepository


def find_conflicts(
    candidates: Iterable[Reservation],
    start: datetime,
    end: datetime,
    exclude_reservation_id: str | None = None,
) -> list[Reservation]:
    """Active reservations whose interval intersects ``[start, end)``, earliest first."""
    conflicts = [
        r
        for r in candidates
        if r.status.is_active
        and r.reservation_id != exclude_reservation_id
        and r.overlaps(start, end)
    ]
    return sorted(conflicts, key=lambda r: (r.start_time, r.reservation_id))


def check_availability(
    repo: ReservationRepository,
    resource_id: str,
    start: datetime,
    end: datetime,
    exclude_reservation_id: str | None = None,
) -> AvailabilityResult:
    # PENDING holds the slot as firmly as APPROVED does
    candidates = repo.list_for_resource(resource_id, ACTIVE_STATUSES)
    conflicts = find_conflicts(candidates, start, end, exclude_reservation_id)
    return AvailabilityResult(available=not conflicts, conflicts=conflicts)


def describe_conflicts(directory: Directory, conflicts: Iterable[Reservation]) -> list[Conflict]:
    names: dict[str, str | None] = {}
    described = []
    for r in conflicts:
        if r.tenant_id not in names:
            names[r.tenant_id] = directory.resolve_tenant_name(r.tenant_id)
        described.append(
            Conflict(
                reservation_id=r.reservation_id,
                tenant_id=r.tenant_id,
                tenant_name=names[r.tenant_id],
                start_time=r.start_time,
                end_time=r.end_time,
                status=r.status,
            )
        )
    return described
