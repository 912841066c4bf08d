from __future__ import annotations

import uuid
from typing import Any, Callable

import structlog
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from starlette.datastructures import Headers, MutableHeaders

from otel_demo.api.errors import internal_error_response
from otel_demo.observability.context import RequestObservation
from otel_demo.observability.telemetry import Telemetry


class ObservabilityMiddleware:
    """Opens a span, counts the request and records its duration, for every route.

    The completion bookkeeping runs in a ``finally`` block so the span is ended
    exactly once whether the handler succeeds, returns an error response or raises.
    """

    def __init__(self, app: Callable[..., Any], telemetry: Telemetry) -> None:
        self.app = app
        self.telemetry = telemetry

    async def __call__(self, scope: dict[str, Any], receive: Callable[..., Any], send: Callable[..., Any]) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        request_id = str(uuid.uuid4())
        method = scope.get("method", "GET")
        path = scope.get("path", "/")
        query = scope.get("query_string", b"").decode("latin-1")
        user_agent = Headers(scope=scope).get("user-agent", "unknown")

        span = self.telemetry.tracer.start_span(f"{method} {path}")
        span.set_attributes(
            {
                "http.method": method,
                "http.url": f"{path}?{query}" if query else path,
                "http.user_agent": user_agent,
            }
        )
        observation = RequestObservation(span=span, method=method, path=path, request_id=request_id)
        observation.attach_to_scope(scope)

        self.telemetry.http_requests_total.add(1, {"method": method, "endpoint": path})
        self.telemetry.active_connections.add(1)

        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            path=path,
            method=method,
        )

        response_started = False

        async def send_wrapper(message: dict[str, Any]) -> None:
            nonlocal response_started

            if message.get("type") == "http.response.start":
                response_started = True
                observation.status_code = int(message.get("status", 500))
                headers = MutableHeaders(scope=message)
                headers["X-Request-ID"] = request_id
            elif message.get("type") == "http.response.body":
                observation.response_size += len(message.get("body", b""))

            await send(message)

        with trace.use_span(span, end_on_exit=False, record_exception=False, set_status_on_exception=False):
            try:
                await self.app(scope, receive, send_wrapper)
            except Exception as exc:
                observation.record_error(exc, "Unhandled error")
                if response_started:
                    raise
                structlog.get_logger("http").exception("unhandled_error", error_type=type(exc).__name__)
                await internal_error_response()(scope, receive, send_wrapper)
            finally:
                self._finish(observation)
                structlog.contextvars.clear_contextvars()

    def _finish(self, observation: RequestObservation) -> None:
        duration = observation.elapsed_seconds()
        status_code = observation.status_code
        span = observation.span

        span.set_attributes(
            {
                "http.status_code": status_code,
                "http.response_size": observation.response_size,
            }
        )
        if status_code >= 500 and not observation.errored:
            span.set_status(Status(StatusCode.ERROR))

        # Update metrics first so they update even if logging misbehaves.
        self.telemetry.http_request_duration.record(
            duration,
            {
                "method": observation.method,
                "endpoint": observation.path,
                "status_code": str(status_code),
            },
        )
        self.telemetry.active_connections.add(-1)
        span.end()

        structlog.get_logger("access").info(
            "http_request",
            status_code=status_code,
            duration_s=duration,
            response_size=observation.response_size,
        )
