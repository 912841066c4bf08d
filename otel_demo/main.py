from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from starlette.exceptions import HTTPException as StarletteHTTPException

from otel_demo import __version__
from otel_demo.api.errors import http_exception_handler
from otel_demo.api.health import router as health_router
from otel_demo.api.metrics import router as metrics_router
from otel_demo.api.simulate import router as simulate_router
from otel_demo.config import Settings, get_settings
from otel_demo.observability.logging import configure_logging
from otel_demo.observability.middleware import ObservabilityMiddleware
from otel_demo.observability.telemetry import Telemetry


logger = structlog.get_logger(__name__)

ENDPOINTS: dict[str, str] = {
    "/health": "Health check",
    "/hello": "Basic hello with delay",
    "/flaky": "Random errors (30% failure rate)",
    "/cpu-intensive": "CPU intensive operation",
    "/memory": "Memory usage info",
    "/db-query": "Simulated database query",
    "/metrics-demo": "Generate custom metrics",
}


def create_app(settings: Settings | None = None, telemetry: Telemetry | None = None) -> FastAPI:
    """Build the service.

    Without an explicit ``telemetry`` the OTLP pipeline is built from settings,
    installed globally, and shut down when the app's lifespan ends.
    """

    settings = settings or get_settings()
    owns_telemetry = telemetry is None
    if telemetry is None:
        configure_logging(settings.logging_level)
        telemetry = Telemetry.from_settings(settings)
        telemetry.install()

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "service_started",
            service_name=settings.service_name,
            port=settings.port,
            endpoints=[f"GET {path} - {summary}" for path, summary in ENDPOINTS.items()],
        )
        try:
            yield
        finally:
            if owns_telemetry:
                telemetry.shutdown(timeout_millis=settings.shutdown_grace_millis)

    app = FastAPI(title="Observability Demo", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.telemetry = telemetry

    app.add_middleware(ObservabilityMiddleware, telemetry=telemetry)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)

    app.include_router(health_router)
    app.include_router(simulate_router)
    app.include_router(metrics_router)

    if settings.auto_instrumentation_enabled:
        FastAPIInstrumentor.instrument_app(
            app,
            tracer_provider=telemetry.tracer_provider,
            meter_provider=telemetry.meter_provider,
        )

    return app
