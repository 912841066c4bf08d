"""Observability plumbing for the demo service.

One ``Telemetry`` pipeline (OpenTelemetry traces, metrics and logs exported over
OTLP), a request middleware that wraps every route in a span, and structlog JSON
logging correlated with the active trace.
"""
