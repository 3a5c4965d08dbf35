from __future__ import annotations

import pytest
from factories import at, reservation_factory

from pool_booking.memory import InMemoryDirectory, InMemoryStore
from pool_booking.models import Reservation, ReservationFilter, ReservationStatus, Resource
from pool_booking.queries import ReservationQueries


@pytest.fixture()
def seeded(store: InMemoryStore, directory: InMemoryDirectory) -> dict[str, Reservation]:
    directory.add_resource(
        Resource(resource_id="r-other", display_name="Other Eight", owner_scope_id="scope-2", owner_operated=True)
    )
    rows = {
        "late": reservation_factory(start_time=at(6, 8), end_time=at(6, 10), activity_id="act-1"),
        "early": reservation_factory(tenant_id="t-b", start_time=at(2, 8), end_time=at(2, 10)),
        "denied": reservation_factory(
            tenant_id="t-b", start_time=at(4, 8), end_time=at(4, 10), status=ReservationStatus.DENIED
        ),
        "launch": reservation_factory(
            resource_id="r-launch", start_time=at(3, 8), end_time=at(3, 9), status=ReservationStatus.APPROVED
        ),
        "other_scope": reservation_factory(resource_id="r-other", tenant_id="t-c", start_time=at(1, 8), end_time=at(1, 9)),
    }
    for r in rows.values():
        store.reservations.add(r)
    return rows


def _ids(views) -> list[str]:
    return [v.reservation_id for v in views]


def test_lists_everything_ordered_by_start(store: InMemoryStore, seeded: dict[str, Reservation]) -> None:
    views = ReservationQueries(store).list()
    expected = ["other_scope", "early", "launch", "denied", "late"]
    assert _ids(views) == [seeded[k].reservation_id for k in expected]


def test_views_carry_display_names(store: InMemoryStore, seeded: dict[str, Reservation]) -> None:
    views = {v.reservation_id: v for v in ReservationQueries(store).list()}

    late = views[seeded["late"].reservation_id]
    assert late.resource_name == "Eight Shell"
    assert late.tenant_name == "Alpha Rowing"
    assert late.activity_name == "Morning practice"
    assert late.owner_scope_id == "scope-1"
    assert views[seeded["early"].reservation_id].activity_name is None


@pytest.mark.parametrize(
    ("filter", "expected"),
    [
        (ReservationFilter(resource_id="r-launch"), ["launch"]),
        (ReservationFilter(tenant_id="t-b"), ["early", "denied"]),
        (ReservationFilter(owner_scope_id="scope-2"), ["other_scope"]),
        (ReservationFilter(owner_scope_id="scope-1"), ["early", "launch", "denied", "late"]),
        (ReservationFilter(statuses=[ReservationStatus.DENIED, ReservationStatus.APPROVED]), ["launch", "denied"]),
        (ReservationFilter(from_date=at(3, 0)), ["launch", "denied", "late"]),
        (ReservationFilter(to_date=at(3, 9)), ["other_scope", "early", "launch"]),
        (ReservationFilter(resource_id="r-eight", statuses=[ReservationStatus.PENDING]), ["early", "late"]),
    ],
)
def test_filters(
    store: InMemoryStore, seeded: dict[str, Reservation], filter: ReservationFilter, expected: list[str]
) -> None:
    views = ReservationQueries(store).list(filter)
    assert _ids(views) == [seeded[k].reservation_id for k in expected]


def test_get_unknown_is_none(store: InMemoryStore) -> None:
    assert ReservationQueries(store).get("missing") is None
