from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

import pytest
from fastapi.responses import StreamingResponse
from opentelemetry.trace import StatusCode

from otel_demo.observability.middleware import ObservabilityMiddleware


async def test_every_request_starts_and_ends_exactly_one_span(api_client, finished_spans) -> None:
    paths = ["/health", "/memory", "/metrics-demo", "/unknown-path"]
    for path in paths:
        resp = await api_client.get(path)
        assert resp.status_code in {200, 404}

    spans = finished_spans()
    assert sorted(span.name for span in spans) == sorted(f"GET {path}" for path in paths)
    assert all(span.end_time is not None for span in spans)


async def test_request_span_carries_http_attributes(api_client, finished_spans) -> None:
    resp = await api_client.get("/health?verbose=1", headers={"User-Agent": "probe/1.0"})
    assert resp.status_code == 200

    (span,) = finished_spans("GET /health")
    assert span.attributes["http.method"] == "GET"
    assert span.attributes["http.url"] == "/health?verbose=1"
    assert span.attributes["http.user_agent"] == "probe/1.0"
    assert span.attributes["http.status_code"] == 200
    assert span.attributes["http.response_size"] == len(resp.content)
    assert resp.headers["X-Request-ID"]


async def test_request_metrics_are_tagged_by_method_and_endpoint(api_client, metric_points) -> None:
    for _ in range(3):
        resp = await api_client.get("/health")
        assert resp.status_code == 200

    requests = [p for p in metric_points("http_requests_total") if p.attributes.get("endpoint") == "/health"]
    assert len(requests) == 1
    assert requests[0].value == 3
    assert dict(requests[0].attributes) == {"method": "GET", "endpoint": "/health"}


async def test_duration_histogram_records_status_code(api_client, metric_points) -> None:
    await api_client.get("/health")
    await api_client.get("/nope")

    points = metric_points("http_request_duration_seconds")
    by_endpoint = {p.attributes["endpoint"]: p for p in points}
    assert by_endpoint["/health"].attributes["status_code"] == "200"
    assert by_endpoint["/nope"].attributes["status_code"] == "404"
    assert by_endpoint["/health"].count == 1
    assert by_endpoint["/health"].sum >= 0


async def test_active_connections_return_to_zero_after_concurrent_requests(api_client, metric_points) -> None:
    responses = await asyncio.gather(*(api_client.get("/hello") for _ in range(20)))
    assert all(resp.status_code == 200 for resp in responses)

    (active,) = metric_points("active_connections")
    assert active.value == 0

    (requests,) = [p for p in metric_points("http_requests_total") if p.attributes["endpoint"] == "/hello"]
    assert requests.value == 20


async def test_unhandled_exception_becomes_generic_500_and_span_is_closed(
    app, api_client, finished_spans, metric_points
) -> None:
    async def explode() -> dict:
        raise RuntimeError("secret connection string")

    app.add_api_route("/explode", explode, methods=["GET"])

    resp = await api_client.get("/explode")
    assert resp.status_code == 500
    body = resp.json()
    assert body["error"] == "Internal Server Error"
    assert "timestamp" in body
    assert "secret" not in resp.text

    (span,) = finished_spans("GET /explode")
    assert span.status.status_code == StatusCode.ERROR
    assert span.attributes["http.status_code"] == 500
    assert any(event.name == "exception" for event in span.events)

    (active,) = metric_points("active_connections")
    assert active.value == 0


async def test_middleware_defaults_missing_user_agent(telemetry, finished_spans) -> None:
    sent: list[dict] = []

    async def inner(scope, receive, send) -> None:
        assert scope["state"]["observation"].path == "/raw"
        await send({"type": "http.response.start", "status": 204, "headers": []})
        await send({"type": "http.response.body", "body": b""})

    async def receive() -> dict:
        return {"type": "http.request", "body": b"", "more_body": False}

    async def send(message: dict) -> None:
        sent.append(message)

    middleware = ObservabilityMiddleware(inner, telemetry=telemetry)
    scope = {"type": "http", "method": "GET", "path": "/raw", "query_string": b"", "headers": []}
    await middleware(scope, receive, send)

    (span,) = finished_spans("GET /raw")
    assert span.attributes["http.user_agent"] == "unknown"
    assert span.attributes["http.status_code"] == 204
    assert span.attributes["http.response_size"] == 0
    assert any(name == b"x-request-id" for name, _ in sent[0]["headers"])


async def test_middleware_passes_non_http_scopes_through(telemetry, finished_spans) -> None:
    seen: list[str] = []

    async def inner(scope, receive, send) -> None:
        seen.append(scope["type"])

    middleware = ObservabilityMiddleware(inner, telemetry=telemetry)
    await middleware({"type": "lifespan"}, None, None)

    assert seen == ["lifespan"]
    assert finished_spans() == []


async def test_error_after_response_started_propagates_and_span_is_closed(
    app, api_client, finished_spans, metric_points
) -> None:
    async def chunks() -> AsyncIterator[bytes]:
        yield b"first"
        raise RuntimeError("stream broke")

    async def stream() -> StreamingResponse:
        return StreamingResponse(chunks(), media_type="text/plain")

    app.add_api_route("/s", stream, methods=["GET"])

    # Depending on the Starlette version the error may arrive inside an exception group.
    with pytest.raises(Exception) as excinfo:
        await api_client.get("/s")
    assert "stream broke" in repr(excinfo.value) or any(
        "stream broke" in repr(inner) for inner in getattr(excinfo.value, "exceptions", ())
    )

    (span,) = finished_spans("GET /s")
    assert span.end_time is not None
    assert span.attributes["http.status_code"] == 200
    assert span.status.status_code == StatusCode.ERROR

    (active,) = metric_points("active_connections")
    assert active.value == 0
