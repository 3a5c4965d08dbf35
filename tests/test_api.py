from __future__ import annotations

from collections.abc import Iterator
from http import HTTPStatus
from typing import Any

import pytest
from factories import at
from fastapi.testclient import TestClient

from pool_booking.api import app, get_service
from pool_booking.lifecycle import ReservationService


@pytest.fixture()
def client(service: ReservationService) -> Iterator[TestClient]:
    app.dependency_overrides[get_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


def create_payload(**overrides: Any) -> dict[str, Any]:
    base = dict(
        resource_id="r-eight",
        tenant_id="t-a",
        start_time=at(5, 8).isoformat(),
        end_time=at(5, 10).isoformat(),
        requested_by="coach-a",
    )
    base.update(overrides)
    return base


def _create(client: TestClient, **overrides: Any) -> dict[str, Any]:
    resp = client.post("/reservations", json=create_payload(**overrides))
    assert resp.status_code == HTTPStatus.CREATED
    return resp.json()


def test_health(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == HTTPStatus.OK
    assert resp.json() == {"status": "ok"}


def test_create_reservation_route(client: TestClient) -> None:
    data = _create(client, notes="Bring riggers", activity_id="act-1")
    assert data["status"] == "PENDING"
    assert data["notes"] == "Bring riggers"
    assert data["approved_by"] is None


def test_create_conflict_lists_colliding_tenant(client: TestClient) -> None:
    first = _create(client)

    resp = client.post(
        "/reservations",
        json=create_payload(tenant_id="t-b", start_time=at(5, 9).isoformat(), end_time=at(5, 11).isoformat()),
    )

    assert resp.status_code == HTTPStatus.CONFLICT
    detail = resp.json()["detail"]
    assert detail["error"] == "conflict"
    (conflict,) = detail["conflicts"]
    assert conflict["reservation_id"] == first["reservation_id"]
    assert conflict["tenant_name"] == "Alpha Rowing"
    assert conflict["start_time"].startswith("2030-01-06T08:00:00")


def test_create_with_inverted_interval_is_bad_request(client: TestClient) -> None:
    resp = client.post(
        "/reservations",
        json=create_payload(start_time=at(5, 10).isoformat(), end_time=at(5, 8).isoformat()),
    )
    assert resp.status_code == HTTPStatus.BAD_REQUEST
    assert resp.json()["detail"]["error"] == "validation_error"


def test_create_missing_fields_is_unprocessable(client: TestClient) -> None:
    resp = client.post("/reservations", json={"resource_id": "r-eight"})
    assert resp.status_code == HTTPStatus.UNPROCESSABLE_ENTITY


def test_create_unknown_resource_is_not_found(client: TestClient) -> None:
    resp = client.post("/reservations", json=create_payload(resource_id="r-missing"))
    assert resp.status_code == HTTPStatus.NOT_FOUND


def test_get_reservation_route(client: TestClient) -> None:
    created = _create(client, activity_id="act-1")

    resp = client.get(f"/reservations/{created['reservation_id']}")

    assert resp.status_code == HTTPStatus.OK
    data = resp.json()
    assert data["resource_name"] == "Eight Shell"
    assert data["tenant_name"] == "Alpha Rowing"
    assert data["activity_name"] == "Morning practice"


def test_get_reservation_route_not_found(client: TestClient) -> None:
    resp = client.get("/reservations/missing")
    assert resp.status_code == HTTPStatus.NOT_FOUND
    assert resp.json()["detail"]["error"] == "not_found"


def test_approve_then_approve_again(client: TestClient) -> None:
    created = _create(client)
    url = f"/reservations/{created['reservation_id']}/approve"

    resp = client.post(url, json={"actor": "admin-1"})
    assert resp.status_code == HTTPStatus.OK
    assert resp.json()["status"] == "APPROVED"
    assert resp.json()["approved_by"] == "admin-1"

    again = client.post(url, json={"actor": "admin-1"})
    assert again.status_code == HTTPStatus.CONFLICT
    assert again.json()["detail"]["error"] == "invalid_state"


def test_deny_route_stores_reason(client: TestClient) -> None:
    created = _create(client)

    resp = client.post(
        f"/reservations/{created['reservation_id']}/deny",
        json={"actor": "admin-2", "reason": "Regatta that weekend"},
    )

    assert resp.status_code == HTTPStatus.OK
    assert resp.json()["status"] == "DENIED"
    assert resp.json()["denial_reason"] == "Regatta that weekend"


def test_cancel_route_frees_slot(client: TestClient) -> None:
    created = _create(client)
    params = {"start": at(5, 8).isoformat(), "end": at(5, 10).isoformat()}

    taken = client.get("/resources/r-eight/availability", params=params)
    assert taken.json()["available"] is False
    assert len(taken.json()["conflicts"]) == 1

    resp = client.post(f"/reservations/{created['reservation_id']}/cancel", json={"actor": "coach-a"})
    assert resp.status_code == HTTPStatus.OK
    assert resp.json()["status"] == "CANCELLED"

    free = client.get("/resources/r-eight/availability", params=params)
    assert free.status_code == HTTPStatus.OK
    assert free.json() == {"available": True, "conflicts": []}


def test_availability_route_rejects_malformed_interval(client: TestClient) -> None:
    params = {"start": at(5, 10).isoformat(), "end": at(5, 8).isoformat()}
    resp = client.get("/resources/r-eight/availability", params=params)
    assert resp.status_code == HTTPStatus.BAD_REQUEST


def test_list_reservations_route_filters(client: TestClient) -> None:
    first = _create(client)
    second = _create(client, tenant_id="t-b", start_time=at(2, 8).isoformat(), end_time=at(2, 9).isoformat())
    third = _create(client, resource_id="r-shared", tenant_id="t-c")
    client.post(f"/reservations/{first['reservation_id']}/approve", json={"actor": "admin-1"})
    client.post(f"/reservations/{second['reservation_id']}/deny", json={"actor": "admin-1"})

    resp = client.get("/reservations", params={"status": ["APPROVED", "DENIED"]})
    assert resp.status_code == HTTPStatus.OK
    assert [r["reservation_id"] for r in resp.json()] == [second["reservation_id"], first["reservation_id"]]

    scoped = client.get("/reservations", params={"owner_scope_id": "scope-1"})
    assert third["reservation_id"] not in {r["reservation_id"] for r in scoped.json()}

    by_tenant = client.get("/reservations", params={"tenant_id": "t-c"})
    assert [r["reservation_id"] for r in by_tenant.json()] == [third["reservation_id"]]
