from __future__ import annotations

import json
from typing import Any

import boto3
from aws_lambda_powertools import Logger, Tracer
from aws_lambda_powertools.utilities.batch.types import PartialItemFailureResponse
from aws_lambda_powertools.utilities.typing import LambdaContext
from boto3.dynamodb.types import TypeDeserializer

logger = Logger()
tracer = Tracer()

_events = boto3.client("events")
_deserializer = TypeDeserializer()

EVENT_SOURCE = "pool_booking.notifications"
_REQUIRED = ("notification_id", "user_id", "notification_type", "title", "message")


def _plain(image: dict[str, Any]) -> dict[str, Any]:
    plain = {}
    for key, value in image.items():
        if isinstance(value, dict):
            plain[key] = _deserializer.deserialize(value)
    return plain


@tracer.capture_lambda_handler
def lambda_handler(event: dict[str, Any], context: LambdaContext) -> PartialItemFailureResponse:
    """Relay new outbox rows to EventBridge.

    Delivery is at least once. When EventBridge rejects entries, the
    rejected records and every record after them are reported back as
    batch item failures (the event source mapping needs
    ``ReportBatchItemFailures``), so Lambda resumes the stream from the
    first rejected record instead of resending what already went out.
    Consumers deduplicate on ``notification_id``.
    """
    pending: list[tuple[str, dict[str, Any]]] = []
    for record in event.get("Records", []):
        if record.get("eventName") != "INSERT":
            continue

        stream = record.get("dynamodb", {})
        notification = _plain(stream.get("NewImage", {}))
        if not all(isinstance(notification.get(field), str) and notification[field] for field in _REQUIRED):
            logger.warning("Skipping incomplete notification record", extra={"event_id": record.get("eventID")})
            continue

        detail = {
            "version": "1.0",
            "notification_id": notification["notification_id"],
            "user_id": notification["user_id"],
            "tenant_id": notification.get("tenant_id"),
            "type": notification["notification_type"],
            "title": notification["title"],
            "message": notification["message"],
            "link_url": notification.get("link_url"),
            "reservation_id": notification.get("reservation_id"),
        }
        logger.info(
            "Relaying notification",
            extra={"notification_id": detail["notification_id"], "user_id": detail["user_id"]},
        )
        sequence_number = stream.get("SequenceNumber") or record.get("eventID", "")
        pending.append(
            (
                sequence_number,
                {
                    "Source": EVENT_SOURCE,
                    "DetailType": notification["notification_type"],
                    "Detail": json.dumps(detail),
                },
            )
        )

    # PutEvents takes at most 10 entries per call
    for i in range(0, len(pending), 10):
        chunk = pending[i : i + 10]
        resp = _events.put_events(Entries=[entry for _, entry in chunk])
        failed = resp.get("FailedEntryCount", 0) if isinstance(resp, dict) else 0
        if not failed:
            continue
        results = resp.get("Entries", [])
        first_failed = next(
            (j for j, result in enumerate(results) if isinstance(result, dict) and result.get("ErrorCode")),
            0,
        )
        unsent = [sequence_number for sequence_number, _ in pending[i + first_failed :]]
        logger.error(
            "EventBridge rejected notification events",
            extra={"failed": failed, "retrying": len(unsent), "first_sequence_number": unsent[0]},
        )
        return {"batchItemFailures": [{"itemIdentifier": sequence_number} for sequence_number in unsent]}

    return {"batchItemFailures": []}
