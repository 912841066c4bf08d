from __future__ import annotations

import random

from fastapi import APIRouter, Depends

from otel_demo.api.dependencies import get_rng, get_telemetry
from otel_demo.models.schemas import MetricsDemoResponse, MetricValues
from otel_demo.observability.telemetry import Telemetry
from otel_demo.services import simulation
from otel_demo.services.runtime import utc_timestamp


router = APIRouter(tags=["metrics"])


@router.get("/metrics-demo", response_model=MetricsDemoResponse)
async def metrics_demo(
    telemetry: Telemetry = Depends(get_telemetry),
    rng: random.Random = Depends(get_rng),
) -> MetricsDemoResponse:
    telemetry.custom_value.set(simulation.draw_custom_value(rng))
    telemetry.room_temperature.set(simulation.draw_temperature(rng))

    # The body reports fresh draws, not the values just recorded on the gauges.
    return MetricsDemoResponse(
        timestamp=utc_timestamp(),
        values=MetricValues(
            custom_value=simulation.draw_custom_value(rng),
            temperature=simulation.draw_temperature(rng),
        ),
    )
