from __future__ import annotations

from .models import Reservation, ReservationFilter, ReservationView, Resource
from .ports import Directory, ReservationStore


class _DisplayJoin:
    """Directory lookups memoized for the lifetime of one query."""

    def __init__(self, directory: Directory) -> None:
        self._directory = directory
        self._resources: dict[str, Resource | None] = {}
        self._tenants: dict[str, str | None] = {}
        self._activities: dict[str, str | None] = {}

    def resource(self, resource_id: str) -> Resource | None:
        if resource_id not in self._resources:
            self._resources[resource_id] = self._directory.resolve_resource(resource_id)
        return self._resources[resource_id]

    def owner_scope_of(self, reservation: Reservation) -> str | None:
        resource = self.resource(reservation.resource_id)
        return resource.owner_scope_id if resource is not None else None

    def tenant_name(self, tenant_id: str) -> str | None:
        if tenant_id not in self._tenants:
            self._tenants[tenant_id] = self._directory.resolve_tenant_name(tenant_id)
        return self._tenants[tenant_id]

    def activity_name(self, activity_id: str | None) -> str | None:
        if activity_id is None:
            return None
        if activity_id not in self._activities:
            self._activities[activity_id] = self._directory.resolve_activity_name(activity_id)
        return self._activities[activity_id]

    def view(self, reservation: Reservation) -> ReservationView:
        resource = self.resource(reservation.resource_id)
        return ReservationView(
            **reservation.model_dump(),
            resource_name=resource.display_name if resource is not None else None,
            owner_scope_id=resource.owner_scope_id if resource is not None else None,
            tenant_name=self.tenant_name(reservation.tenant_id),
            activity_name=self.activity_name(reservation.activity_id),
        )


class ReservationQueries:
    """Read-only listing of reservations joined with directory display data."""

    def __init__(self, store: ReservationStore) -> None:
        self._store = store

    def list(self, filter: ReservationFilter | None = None) -> list[ReservationView]:
        filter = filter or ReservationFilter()
        join = _DisplayJoin(self._store.directory)
        rows = self._store.reservations.query(filter)
        if filter.owner_scope_id is not None:
            rows = [r for r in rows if join.owner_scope_of(r) == filter.owner_scope_id]
        rows.sort(key=lambda r: (r.start_time, r.reservation_id))
        return [join.view(r) for r in rows]

    def get(self, reservation_id: str) -> ReservationView | None:
        reservation = self._store.reservations.get(reservation_id)
        if reservation is None:
            return None
        return _DisplayJoin(self._store.directory).view(reservation)
