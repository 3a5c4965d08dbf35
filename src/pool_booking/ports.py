"""Seams between the reservation engine and its storage and directory.

The engine never talks to a database directly. It asks a
:class:`ReservationStore` for a unit of work scoped to one resource, reads and
writes reservations through the unit's repository, and enqueues notifications
through the unit's dispatcher. Everything staged inside a unit lands together
on commit or not at all.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from types import TracebackType
from typing import Protocol

from .models import Notification, Reservation, ReservationFilter, ReservationStatus, Resource


class Directory(Protocol):
    def resolve_resource(self, resource_id: str) -> Resource | None: ...

    def resolve_admins(self, owner_scope_id: str) -> list[str]: ...

    def resolve_tenant_name(self, tenant_id: str) -> str | None: ...

    def resolve_activity_name(self, activity_id: str) -> str | None: ...


class NotificationDispatcher(Protocol):
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
    ) -> Notification: ...


class ReservationRepository(Protocol):
    def get(self, reservation_id: str) -> Reservation | None: ...

    def list_for_resource(
        self, resource_id: str, statuses: Iterable[ReservationStatus] | None = None
    ) -> list[Reservation]: ...

    def query(self, filter: ReservationFilter) -> list[Reservation]: ...

    def add(self, reservation: Reservation) -> None: ...

    def update(self, reservation: Reservation) -> None: ...


class AbstractUnitOfWork(ABC):
    """One atomic, serializable transaction against a single resource's reservations."""

    reservations: ReservationRepository
    notifications: NotificationDispatcher

    def __init__(self, resource_id: str) -> None:
        self.resource_id = resource_id

    def __enter__(self) -> AbstractUnitOfWork:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if exc_type is None:
            self.commit()
        else:
            self.rollback()

    @abstractmethod
    def commit(self) -> None:
        """Apply every staged write, or raise StaleWriteError if the resource changed."""

    @abstractmethod
    def rollback(self) -> None:
        """Discard every staged write."""


class ReservationStore(ABC):
    directory: Directory

    @property
    @abstractmethod
    def reservations(self) -> ReservationRepository:
        """Read-only, non-transactional view for queries."""

    @abstractmethod
    def unit_of_work(self, resource_id: str) -> AbstractUnitOfWork: ...
