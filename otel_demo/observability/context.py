from __future__ import annotations

from dataclasses import dataclass, field
from time import perf_counter
from typing import Any

from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.trace import Span, Status, StatusCode
from opentelemetry.util.types import AttributeValue


@dataclass
class RequestObservation:
    """Per-request span handle and timing, handed to route handlers explicitly."""

    span: Span
    method: str
    path: str
    request_id: str
    started_at: float = field(default_factory=perf_counter)
    status_code: int = 500
    response_size: int = 0
    errored: bool = False

    def elapsed_seconds(self) -> float:
        return round(perf_counter() - self.started_at, 3)

    def add_event(self, name: str, attributes: dict[str, AttributeValue] | None = None) -> None:
        self.span.add_event(name, attributes=attributes)

    def set_attributes(self, attributes: dict[str, AttributeValue]) -> None:
        self.span.set_attributes(attributes)

    def record_error(self, exc: BaseException, description: str | None = None) -> None:
        self.span.record_exception(exc)
        self.span.set_status(Status(StatusCode.ERROR, description or str(exc)))
        self.errored = True

    def child_context(self) -> Context:
        """Context that parents new spans on this request's span."""
        return trace.set_span_in_context(self.span)

    def attach_to_scope(self, scope: dict[str, Any]) -> None:
        scope.setdefault("state", {})["observation"] = self
