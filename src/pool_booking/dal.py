from __future__ import annotations

import uuid
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, TypedDict, cast

import boto3
from aws_lambda_powertools import Logger
from botocore.exceptions import ClientError

if TYPE_CHECKING:
    # Only for static type checking; not imported at runtime
    from mypy_boto3_dynamodb.client import DynamoDBClient
    from mypy_boto3_dynamodb.service_resource import DynamoDBServiceResource
    from mypy_boto3_dynamodb.service_resource import Table as DynamoDBTable
else:
    # Fallbacks to satisfy annotations at runtime
    DynamoDBClient = Any  # type: ignore[assignment]
    DynamoDBServiceResource = Any  # type: ignore[assignment]
    DynamoDBTable = Any  # type: ignore[assignment]

from .config import Settings
from .errors import StaleWriteError
from .models import Notification, Reservation, ReservationFilter, ReservationStatus, Resource, utcnow
from .ports import AbstractUnitOfWork, ReservationStore

logger = Logger()
_settings = Settings.from_env()

_dynamodb: DynamoDBServiceResource = boto3.resource("dynamodb")
_reservations_table: DynamoDBTable = _dynamodb.Table(_settings.reservations_table_name)
_directory_table: DynamoDBTable = _dynamodb.Table(_settings.directory_table_name)
_notifications_table: DynamoDBTable = _dynamodb.Table(_settings.notifications_table_name)
# The resource's client (un)marshals plain Python values, transactions included
_client: DynamoDBClient = _dynamodb.meta.client

# Sort key of the per-resource version guard that lives beside the reservations
GUARD_KEY = "#version"
RESERVATION_ID_INDEX = "reservation_id_index"
TENANT_ID_INDEX = "tenant_id_index"


class ReservationItem(TypedDict, total=False):
    resource_id: str
    reservation_id: str
    tenant_id: str
    activity_id: str
    start_time: str
    end_time: str
    requested_by: str
    notes: str
    status: str
    denial_reason: str
    approved_by: str
    denied_by: str
    cancelled_by: str
    created_at: str


def _dt_to_iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    # Fixed precision keeps stored strings sortable
    return dt.astimezone(UTC).isoformat(timespec="microseconds")


def _iso_to_dt(s: str) -> datetime:
    return datetime.fromisoformat(s)


_OPTIONAL_FIELDS = ("activity_id", "notes", "denial_reason", "approved_by", "denied_by", "cancelled_by")


def _to_item(reservation: Reservation) -> ReservationItem:
    item: ReservationItem = {
        "resource_id": reservation.resource_id,
        "reservation_id": reservation.reservation_id,
        "tenant_id": reservation.tenant_id,
        "start_time": _dt_to_iso(reservation.start_time),
        "end_time": _dt_to_iso(reservation.end_time),
        "requested_by": reservation.requested_by,
        "status": reservation.status.value,
        "created_at": _dt_to_iso(reservation.created_at),
    }
    # DynamoDB has no use for explicit nulls; absent means None
    for field in _OPTIONAL_FIELDS:
        value = getattr(reservation, field)
        if value is not None:
            item[field] = value  # type: ignore[literal-required]
    return item


def _to_model(item: ReservationItem) -> Reservation:
    return Reservation(
        reservation_id=item["reservation_id"],
        resource_id=item["resource_id"],
        tenant_id=item["tenant_id"],
        activity_id=item.get("activity_id"),
        start_time=_iso_to_dt(item["start_time"]),
        end_time=_iso_to_dt(item["end_time"]),
        requested_by=item["requested_by"],
        notes=item.get("notes"),
        status=ReservationStatus(item.get("status", ReservationStatus.PENDING.value)),
        denial_reason=item.get("denial_reason"),
        approved_by=item.get("approved_by"),
        denied_by=item.get("denied_by"),
        cancelled_by=item.get("cancelled_by"),
        created_at=_iso_to_dt(item["created_at"]),
    )


def _is_reservation(item: dict[str, Any]) -> bool:
    return item.get("reservation_id") != GUARD_KEY


def _query_all(table: DynamoDBTable, **kwargs: Any) -> list[dict[str, Any]]:
    items: list[dict[str, Any]] = []
    while True:
        resp = cast(dict[str, Any], table.query(**kwargs))
        items.extend(it for it in resp.get("Items", []) if isinstance(it, dict))
        last_key = resp.get("LastEvaluatedKey")
        if not last_key:
            return items
        kwargs["ExclusiveStartKey"] = last_key


def _scan_all(table: DynamoDBTable) -> list[dict[str, Any]]:
    items: list[dict[str, Any]] = []
    kwargs: dict[str, Any] = {}
    while True:
        resp = cast(dict[str, Any], table.scan(**kwargs))
        items.extend(it for it in resp.get("Items", []) if isinstance(it, dict))
        last_key = resp.get("LastEvaluatedKey")
        if not last_key:
            return items
        kwargs["ExclusiveStartKey"] = last_key


class DynamoReservationRepository:
    """Reads straight from the table; writes go through a unit of work."""

    def __init__(self, table: DynamoDBTable) -> None:
        self._table = table

    def get(self, reservation_id: str) -> Reservation | None:
        # GSI reads are eventually consistent; fine for locating a reservation
        items = _query_all(
            self._table,
            IndexName=RESERVATION_ID_INDEX,
            KeyConditionExpression="reservation_id = :id",
            ExpressionAttributeValues={":id": reservation_id},
        )
        return _to_model(cast(ReservationItem, items[0])) if items else None

    def list_for_resource(
        self, resource_id: str, statuses: Iterable[ReservationStatus] | None = None
    ) -> list[Reservation]:
        kwargs: dict[str, Any] = {
            "KeyConditionExpression": "resource_id = :rid",
            "ExpressionAttributeValues": {":rid": resource_id},
            "ConsistentRead": True,
        }
        if statuses is not None:
            # Closed rows are dropped server side
            placeholders = {f":s{i}": s.value for i, s in enumerate(sorted(set(statuses), key=lambda s: s.value))}
            if not placeholders:
                return []
            kwargs["FilterExpression"] = f"#status IN ({', '.join(placeholders)})"
            kwargs["ExpressionAttributeNames"] = {"#status": "status"}
            kwargs["ExpressionAttributeValues"].update(placeholders)
        items = _query_all(self._table, **kwargs)
        return [_to_model(cast(ReservationItem, it)) for it in items if _is_reservation(it)]

    def query(self, filter: ReservationFilter) -> list[Reservation]:
        if filter.resource_id is not None:
            items = _query_all(
                self._table,
                KeyConditionExpression="resource_id = :rid",
                ExpressionAttributeValues={":rid": filter.resource_id},
            )
        elif filter.tenant_id is not None:
            items = _query_all(
                self._table,
                IndexName=TENANT_ID_INDEX,
                KeyConditionExpression="tenant_id = :tid",
                ExpressionAttributeValues={":tid": filter.tenant_id},
            )
        else:
            items = _scan_all(self._table)
        reservations = (_to_model(cast(ReservationItem, it)) for it in items if _is_reservation(it))
        return [r for r in reservations if filter.matches(r)]

    def add(self, reservation: Reservation) -> None:
        raise NotImplementedError("Writes must go through a unit of work")

    def update(self, reservation: Reservation) -> None:
        raise NotImplementedError("Writes must go through a unit of work")


class _TransactionalReservationRepository(DynamoReservationRepository):
    def __init__(self, table: DynamoDBTable, resource_id: str, staged: list[dict[str, Any]]) -> None:
        super().__init__(table)
        self._resource_id = resource_id
        self._staged = staged
        self._pending: dict[str, Reservation] = {}

    def get(self, reservation_id: str) -> Reservation | None:
        if reservation_id in self._pending:
            return self._pending[reservation_id].model_copy()
        resp = cast(
            dict[str, Any],
            self._table.get_item(
                Key={"resource_id": self._resource_id, "reservation_id": reservation_id},
                ConsistentRead=True,
            ),
        )
        item = resp.get("Item")
        if not isinstance(item, dict):
            return None
        return _to_model(cast(ReservationItem, item))

    def list_for_resource(
        self, resource_id: str, statuses: Iterable[ReservationStatus] | None = None
    ) -> list[Reservation]:
        statuses = list(statuses) if statuses is not None else None
        found = {r.reservation_id: r for r in super().list_for_resource(resource_id, statuses)}
        for reservation_id, r in self._pending.items():
            if r.resource_id != resource_id:
                continue
            if statuses is None or r.status in statuses:
                found[reservation_id] = r
            else:
                found.pop(reservation_id, None)
        return list(found.values())

    def add(self, reservation: Reservation) -> None:
        self._stage(reservation, "attribute_not_exists(reservation_id)")

    def update(self, reservation: Reservation) -> None:
        self._stage(reservation, "attribute_exists(reservation_id)")

    def _stage(self, reservation: Reservation, condition: str) -> None:
        if reservation.resource_id != self._resource_id:
            raise ValueError(
                f"Unit of work for {self._resource_id} cannot write to {reservation.resource_id}"
            )
        self._pending[reservation.reservation_id] = reservation.model_copy()
        self._staged.append(
            {
                "Put": {
                    "TableName": self._table.name,
                    "Item": _to_item(reservation),
                    "ConditionExpression": condition,
                }
            }
        )


class DynamoOutbox:
    """Stages notification rows into the enclosing transaction."""

    def __init__(self, table: DynamoDBTable, staged: list[dict[str, Any]]) -> None:
        self._table = table
        self._staged = staged

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
        item = notification.model_dump(mode="json", exclude_none=True)
        self._staged.append({"Put": {"TableName": self._table.name, "Item": item}})
        return notification


class DynamoUnitOfWork(AbstractUnitOfWork):
    """Optimistic, serializable unit of work over one resource's partition.

    The resource's version guard is read on entry. Commit writes every staged
    item plus the bumped guard in one TransactWriteItems call conditioned on
    the guard still holding the version that was read, so any concurrent
    commit on the same resource makes this one fail with StaleWriteError.
    """

    reservations: _TransactionalReservationRepository
    notifications: DynamoOutbox

    def __init__(
        self,
        resource_id: str,
        reservations_table: DynamoDBTable,
        notifications_table: DynamoDBTable,
        client: DynamoDBClient,
    ) -> None:
        super().__init__(resource_id)
        self._reservations_table = reservations_table
        self._notifications_table = notifications_table
        self._client = client
        self._staged: list[dict[str, Any]] = []
        self._version = 0

    def __enter__(self) -> DynamoUnitOfWork:
        resp = cast(
            dict[str, Any],
            self._reservations_table.get_item(
                Key={"resource_id": self.resource_id, "reservation_id": GUARD_KEY},
                ConsistentRead=True,
            ),
        )
        guard = resp.get("Item") or {}
        self._version = int(guard.get("version", 0))
        self._staged = []
        self.reservations = _TransactionalReservationRepository(
            self._reservations_table, self.resource_id, self._staged
        )
        self.notifications = DynamoOutbox(self._notifications_table, self._staged)
        return self

    def commit(self) -> None:
        if not self._staged:
            return
        guard_update = {
            "Update": {
                "TableName": self._reservations_table.name,
                "Key": {"resource_id": self.resource_id, "reservation_id": GUARD_KEY},
                "UpdateExpression": "SET version = :next",
                "ConditionExpression": "attribute_not_exists(version) OR version = :expected",
                "ExpressionAttributeValues": {":next": self._version + 1, ":expected": self._version},
            }
        }
        items = [guard_update, *self._staged]
        logger.debug(
            "Committing transaction",
            extra={"resource_id": self.resource_id, "items": len(items), "version": self._version},
        )
        try:
            self._client.transact_write_items(TransactItems=items)  # type: ignore[arg-type]
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") == "TransactionCanceledException":
                raise StaleWriteError(f"Resource {self.resource_id} changed during the transaction") from exc
            raise
        finally:
            self._staged.clear()

    def rollback(self) -> None:
        if self._staged:
            logger.warning(
                "Discarding staged writes",
                extra={"resource_id": self.resource_id, "items": len(self._staged)},
            )
        self._staged.clear()


class DynamoDirectory:
    """Reads directory entries from a single table keyed by ``pk``.

    Items are ``RESOURCE#<id>``, ``SCOPE#<id>`` (admin user ids and booking
    window), ``TENANT#<id>`` and ``ACTIVITY#<id>``.
    """

    def __init__(self, table: DynamoDBTable) -> None:
        self._table = table

    def _get(self, pk: str) -> dict[str, Any] | None:
        resp = cast(dict[str, Any], self._table.get_item(Key={"pk": pk}))
        item = resp.get("Item")
        return item if isinstance(item, dict) else None

    def resolve_resource(self, resource_id: str) -> Resource | None:
        item = self._get(f"RESOURCE#{resource_id}")
        if item is None:
            return None
        owner_scope_id = item.get("owner_scope_id")
        window = None
        if owner_scope_id:
            scope = self._get(f"SCOPE#{owner_scope_id}") or {}
            if scope.get("booking_window_days") is not None:
                window = int(scope["booking_window_days"])
        return Resource(
            resource_id=resource_id,
            display_name=item.get("display_name", resource_id),
            owner_scope_id=owner_scope_id,
            owner_operated=bool(item.get("owner_operated", False)),
            poolable=bool(item.get("poolable", False)),
            booking_window_days=window,
        )

    def resolve_admins(self, owner_scope_id: str) -> list[str]:
        scope = self._get(f"SCOPE#{owner_scope_id}") or {}
        return [str(uid) for uid in scope.get("admin_user_ids", [])]

    def resolve_tenant_name(self, tenant_id: str) -> str | None:
        item = self._get(f"TENANT#{tenant_id}")
        return item.get("name") if item else None

    def resolve_activity_name(self, activity_id: str) -> str | None:
        item = self._get(f"ACTIVITY#{activity_id}")
        return item.get("name") if item else None


class DynamoStore(ReservationStore):
    def __init__(
        self,
        reservations_table: DynamoDBTable | None = None,
        directory_table: DynamoDBTable | None = None,
        notifications_table: DynamoDBTable | None = None,
        client: DynamoDBClient | None = None,
    ) -> None:
        self._reservations_table = reservations_table or _reservations_table
        self._notifications_table = notifications_table or _notifications_table
        self._client = client or _client
        self.directory = DynamoDirectory(directory_table or _directory_table)

    @property
    def reservations(self) -> DynamoReservationRepository:
        return DynamoReservationRepository(self._reservations_table)

    def unit_of_work(self, resource_id: str) -> DynamoUnitOfWork:
        return DynamoUnitOfWork(resource_id, self._reservations_table, self._notifications_table, self._client)
