from __future__ import annotations

from typing import Any

from aws_lambda_powertools import Logger
from aws_lambda_powertools.logging import correlation_paths
from mangum import Mangum
from mangum.types import LambdaContext

from pool_booking.api import app

logger = Logger()
# No startup/shutdown hooks; the store is built lazily on first request
handler = Mangum(app, lifespan="off")


@logger.inject_lambda_context(correlation_id_path=correlation_paths.API_GATEWAY_HTTP, clear_state=True)
def lambda_handler(event: dict[str, Any], context: LambdaContext) -> Any:
    if isinstance(event, dict) and event.get("version") == "2.0":
        # API Gateway HTTP API v2.0; local and test events leave these out
        request_context = event.setdefault("requestContext", {})
        http_ctx = request_context.setdefault("http", {})
        http_ctx.setdefault("sourceIp", "127.0.0.1")
        http_ctx.setdefault("userAgent", "pytest")
        request_context.setdefault("stage", "$default")
        # Every reservation log line of this invocation carries the route
        logger.append_keys(route_key=event.get("routeKey"))
        logger.info("Routing request", extra={"path": event.get("rawPath")})

    return handler(event, context)
