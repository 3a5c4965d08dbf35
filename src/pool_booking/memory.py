from __future__ import annotations

import threading
import uuid
from collections.abc import Iterable
from types import TracebackType

from aws_lambda_powertools import Logger

from .models import Notification, Reservation, ReservationFilter, ReservationStatus, Resource, utcnow
from .ports import AbstractUnitOfWork, ReservationStore

logger = Logger()


class InMemoryDirectory:
    def __init__(self) -> None:
        self.resources: dict[str, Resource] = {}
        self.admins: dict[str, list[str]] = {}
        self.tenants: dict[str, str] = {}
        self.activities: dict[str, str] = {}

    def add_resource(self, resource: Resource) -> Resource:
        self.resources[resource.resource_id] = resource
        return resource

    def set_admins(self, owner_scope_id: str, user_ids: Iterable[str]) -> None:
        self.admins[owner_scope_id] = list(user_ids)

    def add_tenant(self, tenant_id: str, name: str) -> None:
        self.tenants[tenant_id] = name

    def add_activity(self, activity_id: str, name: str) -> None:
        self.activities[activity_id] = name

    def resolve_resource(self, resource_id: str) -> Resource | None:
        return self.resources.get(resource_id)

    def resolve_admins(self, owner_scope_id: str) -> list[str]:
        return list(self.admins.get(owner_scope_id, []))

    def resolve_tenant_name(self, tenant_id: str) -> str | None:
        return self.tenants.get(tenant_id)

    def resolve_activity_name(self, activity_id: str) -> str | None:
        return self.activities.get(activity_id)


class InMemoryReservationRepository:
    def __init__(self, rows: dict[str, Reservation], guard: threading.Lock | None = None) -> None:
        self._rows = rows
        # Shared with the store so reads never iterate rows while a commit resizes them
        self._guard = guard if guard is not None else threading.Lock()

    def _visible(self) -> dict[str, Reservation]:
        return self._rows

    def _snapshot(self) -> dict[str, Reservation]:
        with self._guard:
            return dict(self._visible())

    def _write(self, reservation: Reservation) -> None:
        with self._guard:
            self._rows[reservation.reservation_id] = reservation

    def get(self, reservation_id: str) -> Reservation | None:
        found = self._snapshot().get(reservation_id)
        return found.model_copy() if found is not None else None

    def list_for_resource(
        self, resource_id: str, statuses: Iterable[ReservationStatus] | None = None
    ) -> list[Reservation]:
        wanted = set(statuses) if statuses is not None else None
        return [
            r.model_copy()
            for r in self._snapshot().values()
            if r.resource_id == resource_id and (wanted is None or r.status in wanted)
        ]

    def query(self, filter: ReservationFilter) -> list[Reservation]:
        return [r.model_copy() for r in self._snapshot().values() if filter.matches(r)]

    def add(self, reservation: Reservation) -> None:
        if reservation.reservation_id in self._snapshot():
            raise ValueError(f"Reservation {reservation.reservation_id} already exists")
        self._write(reservation.model_copy())

    def update(self, reservation: Reservation) -> None:
        if reservation.reservation_id not in self._snapshot():
            raise KeyError(reservation.reservation_id)
        self._write(reservation.model_copy())


class _StagedReservationRepository(InMemoryReservationRepository):
    """Reads see committed rows overlaid with this unit's own writes."""

    def __init__(self, rows: dict[str, Reservation], guard: threading.Lock) -> None:
        super().__init__(rows, guard)
        self.staged: dict[str, Reservation] = {}

    def _visible(self) -> dict[str, Reservation]:
        return {**self._rows, **self.staged}

    def _write(self, reservation: Reservation) -> None:
        self.staged[reservation.reservation_id] = reservation


class InMemoryOutbox:
    def __init__(self) -> None:
        self.staged: list[Notification] = []

    def enqueue(
        self,
        user_id: str,
        notification_type: str,
        title: str,
        message: str,
        link_url: str,
        *,
        tenant_id: str,
        reservation_id: str | None = None,
    ) -> Notification:
        notification = Notification(
            notification_id=str(uuid.uuid4()),
            user_id=user_id,
            tenant_id=tenant_id,
            notification_type=notification_type,
            title=title,
            message=message,
            link_url=link_url,
            reservation_id=reservation_id,
            created_at=utcnow(),
        )
        self.staged.append(notification)
        return notification


class InMemoryUnitOfWork(AbstractUnitOfWork):
    reservations: _StagedReservationRepository
    notifications: InMemoryOutbox

    def __init__(self, store: InMemoryStore, resource_id: str) -> None:
        super().__init__(resource_id)
        self._store = store
        self._lock = store.lock_for(resource_id)

    def __enter__(self) -> InMemoryUnitOfWork:
        # Held until exit, so units on the same resource run one at a time
        self._lock.acquire()
        self.reservations = _StagedReservationRepository(self._store.rows, self._store.rows_guard)
        self.notifications = InMemoryOutbox()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        try:
            super().__exit__(exc_type, exc, tb)
        finally:
            self._lock.release()

    def commit(self) -> None:
        with self._store.rows_guard:
            self._store.rows.update(self.reservations.staged)
            self._store.notifications.extend(self.notifications.staged)
        logger.debug(
            "Committed unit of work",
            extra={
                "resource_id": self.resource_id,
                "reservations": len(self.reservations.staged),
                "notifications": len(self.notifications.staged),
            },
        )
        self.reservations.staged.clear()
        self.notifications.staged.clear()

    def rollback(self) -> None:
        if self.reservations.staged or self.notifications.staged:
            logger.warning(
                "Rolling back unit of work",
                extra={
                    "resource_id": self.resource_id,
                    "reservations": len(self.reservations.staged),
                    "notifications": len(self.notifications.staged),
                },
            )
        self.reservations.staged.clear()
        self.notifications.staged.clear()


class InMemoryStore(ReservationStore):
    def __init__(self, directory: InMemoryDirectory | None = None) -> None:
        self.directory = directory if directory is not None else InMemoryDirectory()
        self.rows: dict[str, Reservation] = {}
        self.notifications: list[Notification] = []
        # Store-wide; per-resource locks alone leave other resources free to commit
        self.rows_guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @property
    def reservations(self) -> InMemoryReservationRepository:
        return InMemoryReservationRepository(self.rows, self.rows_guard)

    def lock_for(self, resource_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(resource_id, threading.Lock())

    def unit_of_work(self, resource_id: str) -> InMemoryUnitOfWork:
        return InMemoryUnitOfWork(self, resource_id)
