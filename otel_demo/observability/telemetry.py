"""OpenTelemetry bootstrap for the demo service.

A single ``Telemetry`` object owns the tracer, meter and logger providers plus
every metric instrument the service writes to. It is built once, before the
server accepts requests, and handed to the middleware and to route handlers;
nothing else in the package creates instruments.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from time import monotonic
from typing import Any

import structlog
from opentelemetry import metrics, trace
from opentelemetry._logs import set_logger_provider
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler, LogRecordProcessor
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricReader, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import DEPLOYMENT_ENVIRONMENT, SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import SpanProcessor, TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from otel_demo import __version__
from otel_demo.config import Settings
from otel_demo.observability.logging import UVICORN_LOGGERS


INSTRUMENTATION_NAME = "observability-demo"

logger = structlog.get_logger(__name__)


def create_resource(settings: Settings) -> Resource:
    return Resource.create(
        {
            SERVICE_NAME: settings.service_name,
            SERVICE_VERSION: settings.service_version,
            DEPLOYMENT_ENVIRONMENT: settings.environment,
        }
    )


class Telemetry:
    """Process-wide telemetry pipeline and the instruments recorded on it."""

    def __init__(
        self,
        resource: Resource | None = None,
        *,
        span_processors: Iterable[SpanProcessor] = (),
        metric_readers: Iterable[MetricReader] = (),
        log_processors: Iterable[LogRecordProcessor] = (),
    ) -> None:
        self.resource = resource or Resource.create({SERVICE_NAME: INSTRUMENTATION_NAME})

        self.tracer_provider = TracerProvider(resource=self.resource)
        for processor in span_processors:
            self.tracer_provider.add_span_processor(processor)

        self.meter_provider = MeterProvider(resource=self.resource, metric_readers=list(metric_readers))

        log_processors = list(log_processors)
        self.logger_provider: LoggerProvider | None = None
        if log_processors:
            self.logger_provider = LoggerProvider(resource=self.resource)
            for log_processor in log_processors:
                self.logger_provider.add_log_record_processor(log_processor)

        self.tracer = self.tracer_provider.get_tracer(INSTRUMENTATION_NAME, __version__)
        self.meter = self.meter_provider.get_meter(INSTRUMENTATION_NAME, __version__)

        self.http_requests_total = self.meter.create_counter(
            "http_requests_total",
            description="Total number of HTTP requests",
        )
        self.http_request_duration = self.meter.create_histogram(
            "http_request_duration_seconds",
            unit="s",
            description="Duration of HTTP requests in seconds",
        )
        self.active_connections = self.meter.create_up_down_counter(
            "active_connections",
            description="Number of active connections",
        )
        self.custom_value = self.meter.create_gauge(
            "demo_custom_value",
            description="Random demo value in [0, 100)",
        )
        self.room_temperature = self.meter.create_gauge(
            "room_temperature_celsius",
            unit="Cel",
            description="Simulated room temperature",
        )

        self._log_handler: logging.Handler | None = None
        self._is_shutdown = False

    @classmethod
    def from_settings(cls, settings: Settings) -> Telemetry:
        """Build the OTLP/gRPC pipeline pointed at the configured collector.

        Each exporter call is capped at the shutdown grace period so a slow or
        unreachable collector cannot hold a flush past that bound.
        """

        resource = create_resource(settings)
        if not settings.telemetry_export_enabled:
            logger.info("telemetry_export_disabled", service_name=settings.service_name)
            return cls(resource)

        endpoint = settings.otlp_endpoint
        exporter_options: dict[str, Any] = {
            "endpoint": endpoint,
            "insecure": endpoint.startswith("http://"),
            "timeout": settings.shutdown_grace_seconds,
        }
        telemetry = cls(
            resource,
            span_processors=[BatchSpanProcessor(OTLPSpanExporter(**exporter_options))],
            metric_readers=[
                PeriodicExportingMetricReader(
                    OTLPMetricExporter(**exporter_options),
                    export_interval_millis=settings.metric_export_interval_ms,
                )
            ],
            log_processors=[BatchLogRecordProcessor(OTLPLogExporter(**exporter_options))],
        )
        logger.info("telemetry_initialized", service_name=settings.service_name, endpoint=endpoint)
        return telemetry

    def install(self) -> None:
        """Register the providers globally and forward stdlib logs to the collector.

        Only the running service should call this; tests keep their pipelines local.
        """

        trace.set_tracer_provider(self.tracer_provider)
        metrics.set_meter_provider(self.meter_provider)
        if self.logger_provider is not None:
            set_logger_provider(self.logger_provider)
        self.forward_logs()

    def forward_logs(self) -> None:
        """Send stdlib log records, uvicorn's included, through the logger provider."""

        if self.logger_provider is None or self._log_handler is not None:
            return

        self._log_handler = LoggingHandler(level=logging.NOTSET, logger_provider=self.logger_provider)
        logging.getLogger().addHandler(self._log_handler)
        for name in UVICORN_LOGGERS:
            named = logging.getLogger(name)
            if not named.propagate:
                named.addHandler(self._log_handler)

    def _stop_forwarding_logs(self) -> None:
        if self._log_handler is None:
            return
        for name in ("", *UVICORN_LOGGERS):
            logging.getLogger(name).removeHandler(self._log_handler)
        self._log_handler = None

    def shutdown(self, timeout_millis: int = 5_000) -> None:
        """Flush pending telemetry and stop the exporters within ``timeout_millis``. Idempotent.

        The providers drain on a daemon thread sharing one deadline; if it is
        still running when the deadline passes the remaining work is abandoned.
        """

        if self._is_shutdown:
            return
        self._is_shutdown = True
        self._stop_forwarding_logs()

        deadline = monotonic() + timeout_millis / 1000
        worker = threading.Thread(
            target=self._drain,
            args=(deadline,),
            name="telemetry-shutdown",
            daemon=True,
        )
        worker.start()
        worker.join(timeout=max(0.0, deadline - monotonic()))

        if worker.is_alive():
            logger.warning("telemetry_shutdown_timed_out", timeout_millis=timeout_millis)
            return
        logger.info("telemetry_shutdown")

    def _drain(self, deadline: float) -> None:
        providers: list[tuple[str, Any]] = [
            ("traces", self.tracer_provider),
            ("metrics", self.meter_provider),
            ("logs", self.logger_provider),
        ]
        for signal, provider in providers:
            if provider is None:
                continue
            try:
                provider.force_flush(_remaining_millis(deadline))
                if isinstance(provider, MeterProvider):
                    provider.shutdown(timeout_millis=_remaining_millis(deadline))
                else:
                    provider.shutdown()
            except Exception:
                # Exporter failures must not block process exit.
                logger.exception("telemetry_shutdown_failed", signal=signal)

    @property
    def is_shutdown(self) -> bool:
        return self._is_shutdown


def _remaining_millis(deadline: float) -> int:
    return max(0, int((deadline - monotonic()) * 1000))
