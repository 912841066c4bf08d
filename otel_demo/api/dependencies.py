from __future__ import annotations

import random

from fastapi import Request

from otel_demo.observability.context import RequestObservation
from otel_demo.observability.telemetry import Telemetry
from otel_demo.services.simulation import get_random_source


def get_observation(request: Request) -> RequestObservation:
    return request.state.observation


def get_telemetry(request: Request) -> Telemetry:
    return request.app.state.telemetry


def get_rng() -> random.Random:
    return get_random_source()
