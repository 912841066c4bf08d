from __future__ import annotations

import random
from collections.abc import AsyncIterator, Callable, Iterable
from typing import Any

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from opentelemetry.sdk.metrics.export import InMemoryMetricReader
from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from otel_demo.config import get_settings
from otel_demo.main import create_app
from otel_demo.observability.telemetry import Telemetry
from otel_demo.services.simulation import set_random_source


class ScriptedRandom(random.Random):
    """Replays fixed values from ``random()``, then continues with a seeded stream."""

    def __init__(self, values: Iterable[float], seed: int = 0) -> None:
        super().__init__(seed)
        self._values = list(values)

    def random(self) -> float:
        if self._values:
            return self._values.pop(0)
        return super().random()


@pytest.fixture(autouse=True)
def test_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TELEMETRY_EXPORT_ENABLED", "false")
    monkeypatch.setenv("AUTO_INSTRUMENTATION_ENABLED", "false")
    monkeypatch.delenv("PORT", raising=False)
    get_settings.cache_clear()
    set_random_source(random.Random(1234))

    yield

    set_random_source(None)
    get_settings.cache_clear()


@pytest.fixture
def span_exporter() -> InMemorySpanExporter:
    return InMemorySpanExporter()


@pytest.fixture
def metric_reader() -> InMemoryMetricReader:
    return InMemoryMetricReader()


@pytest.fixture
def telemetry(span_exporter: InMemorySpanExporter, metric_reader: InMemoryMetricReader) -> Telemetry:
    telemetry = Telemetry(
        span_processors=[SimpleSpanProcessor(span_exporter)],
        metric_readers=[metric_reader],
    )
    yield telemetry
    telemetry.shutdown(timeout_millis=1_000)


@pytest.fixture
def app(telemetry: Telemetry) -> FastAPI:
    return create_app(get_settings(), telemetry=telemetry)


@pytest.fixture
async def api_client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def finished_spans(span_exporter: InMemorySpanExporter) -> Callable[[str | None], list[ReadableSpan]]:
    def _spans(name: str | None = None) -> list[ReadableSpan]:
        spans = list(span_exporter.get_finished_spans())
        if name is None:
            return spans
        return [span for span in spans if span.name == name]

    return _spans


@pytest.fixture
def metric_points(metric_reader: InMemoryMetricReader) -> Callable[[str], list[Any]]:
    """Collect and return the data points of one instrument."""

    def _points(name: str) -> list[Any]:
        data = metric_reader.get_metrics_data()
        if data is None:
            return []

        points: list[Any] = []
        for resource_metrics in data.resource_metrics:
            for scope_metrics in resource_metrics.scope_metrics:
                for metric in scope_metrics.metrics:
                    if metric.name == name:
                        points.extend(metric.data.data_points)
        return points

    return _points


@pytest.fixture
def script_random() -> Callable[[Iterable[float]], None]:
    """Make the next ``random()`` draws return the given values."""

    def _script(values: Iterable[float]) -> None:
        set_random_source(ScriptedRandom(values))

    return _script
