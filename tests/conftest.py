from __future__ import annotations

import os

# Must be set before boto3 clients are created at import time
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
os.environ.setdefault("POWERTOOLS_TRACE_DISABLED", "true")
os.environ.setdefault("POWERTOOLS_METRICS_NAMESPACE", "PoolBookingTests")

import pytest  # noqa: E402
from factories import NOW  # noqa: E402

from pool_booking.config import Settings  # noqa: E402
from pool_booking.lifecycle import ReservationService  # noqa: E402
from pool_booking.memory import InMemoryDirectory, InMemoryStore  # noqa: E402
from pool_booking.models import Resource  # noqa: E402


@pytest.fixture()
def directory() -> InMemoryDirectory:
    d = InMemoryDirectory()
    d.add_resource(
        Resource(
            resource_id="r-eight",
            display_name="Eight Shell",
            owner_scope_id="scope-1",
            owner_operated=True,
            booking_window_days=30,
        )
    )
    # No window of its own; falls back to the configured default
    d.add_resource(
        Resource(resource_id="r-launch", display_name="Coach Launch", owner_scope_id="scope-1", owner_operated=True)
    )
    # Tenant-owned but lent to the pool; nobody to notify
    d.add_resource(Resource(resource_id="r-shared", display_name="Shared Single", poolable=True))
    d.add_resource(Resource(resource_id="r-private", display_name="Private Pair"))
    d.set_admins("scope-1", ["admin-1", "admin-2"])
    d.add_tenant("t-a", "Alpha Rowing")
    d.add_tenant("t-b", "Bravo Rowing")
    d.add_tenant("t-c", "Charlie Crew")
    d.add_activity("act-1", "Morning practice")
    return d


@pytest.fixture()
def store(directory: InMemoryDirectory) -> InMemoryStore:
    return InMemoryStore(directory)


@pytest.fixture()
def settings() -> Settings:
    return Settings(store_backend="memory")


@pytest.fixture()
def service(store: InMemoryStore, settings: Settings) -> ReservationService:
    return ReservationService(store, settings, clock=lambda: NOW)
