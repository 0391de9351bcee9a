"""Request context middleware.

For every HTTP request:
- reuse the caller's X-Request-ID or generate one, and echo it on the response
- bind the request id into structlog contextvars so every log line carries it
- track in-flight requests and record count/latency metrics
- log the completed request with status and duration
"""

import time
from typing import Any
from uuid import uuid4

import structlog
from litestar import Litestar
from litestar.types import ASGIApp, Message, Receive, Scope, Send

from oura_health_server.core.metrics import MetricsCollector

REQUEST_ID_HEADER = b"x-request-id"

logger = structlog.get_logger()


def _route_template(scope: Scope) -> str:
    """Return the matched route path (low cardinality), or the raw path."""
    template: Any = scope.get("path_template")
    return template or scope.get("path", "unknown")


class RequestContextMiddleware:
    """Raw ASGI middleware adding request ids, metrics and access logs."""

    def __init__(self, app: ASGIApp) -> None:
        """Initialize middleware with the ASGI app."""
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Process the request."""
        if scope["type"] != "http":  # type: ignore[comparison-overlap]
            await self.app(scope, receive, send)
            return

        request_id = None
        for name, value in scope.get("headers", []):
            if name.lower() == REQUEST_ID_HEADER:
                request_id = value.decode("latin-1")
                break
        request_id = request_id or str(uuid4())

        metrics: MetricsCollector | None = getattr(
            Litestar.from_scope(scope).state, "metrics", None
        )
        method = scope.get("method", "GET")
        status_code = 500
        started = time.perf_counter()

        async def send_wrapper(message: Message) -> None:
            """Wrap send to capture the status and inject the request id header."""
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                headers = list(message.get("headers", []))
                headers.append((REQUEST_ID_HEADER, request_id.encode("latin-1")))
                message = {**message, "headers": headers}  # type: ignore[typeddict-item]
            await send(message)

        structlog.contextvars.bind_contextvars(request_id=request_id)
        if metrics is not None:
            metrics.http_requests_in_progress.inc()
        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            duration = time.perf_counter() - started
            endpoint = _route_template(scope)
            if metrics is not None:
                metrics.http_requests_in_progress.dec()
                metrics.record_request(method, endpoint, status_code, duration)
            logger.info(
                "Request completed",
                method=method,
                path=scope.get("path"),
                status=status_code,
                duration_ms=round(duration * 1000, 2),
            )
            structlog.contextvars.unbind_contextvars("request_id")
