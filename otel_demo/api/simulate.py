from __future__ import annotations

import asyncio
import random

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from opentelemetry.trace import Status, StatusCode

from otel_demo.api.dependencies import get_observation, get_rng, get_telemetry
from otel_demo.models.schemas import (
    CpuIntensiveResponse,
    DbQueryResponse,
    ErrorResponse,
    FlakyResponse,
    HelloResponse,
)
from otel_demo.observability.context import RequestObservation
from otel_demo.observability.telemetry import Telemetry
from otel_demo.services import simulation
from otel_demo.services.runtime import utc_timestamp

router = APIRouter(tags=["simulate"])
logger = structlog.get_logger(__name__)

_ERROR_RESPONSES = {500: {"model": ErrorResponse}}


@router.get("/hello", response_model=HelloResponse)
async def hello(
    observation: RequestObservation = Depends(get_observation),
    rng: random.Random = Depends(get_rng),
) -> HelloResponse:
    delay = simulation.draw_hello_delay_ms(rng)
    observation.add_event("Processing hello request", {"delay": delay})

    await asyncio.sleep(delay / 1000)

    return HelloResponse(
        message="Hello, Observability from Python!",
        delay=delay,
        request_id=simulation.new_request_id(rng),
    )


@router.get("/flaky", response_model=FlakyResponse, responses=_ERROR_RESPONSES)
async def flaky(
    observation: RequestObservation = Depends(get_observation),
    rng: random.Random = Depends(get_rng),
) -> FlakyResponse | JSONResponse:
    if simulation.should_fail(rng):
        error = RuntimeError("Simulated random error")
        observation.record_error(error, "Random error occurred")
        logger.error("flaky_endpoint_error", error=str(error))
        return JSONResponse(status_code=500, content=ErrorResponse(error="Something went wrong!").model_dump())

    observation.add_event("Flaky endpoint succeeded")
    return FlakyResponse(timestamp=utc_timestamp())


@router.get("/cpu-intensive", response_model=CpuIntensiveResponse)
async def cpu_intensive(
    observation: RequestObservation = Depends(get_observation),
    rng: random.Random = Depends(get_rng),
) -> CpuIntensiveResponse:
    # Stays async def: the loop is meant to run on, and stall, the event loop.
    observation.add_event("Starting CPU intensive operation")

    iterations = simulation.CPU_ITERATIONS
    result = simulation.burn_cpu(rng, iterations)

    observation.add_event("CPU intensive operation completed", {"iterations": iterations, "result": result})
    return CpuIntensiveResponse(iterations=iterations, result=round(result), timestamp=utc_timestamp())


@router.get("/db-query", response_model=DbQueryResponse, responses=_ERROR_RESPONSES)
async def db_query(
    observation: RequestObservation = Depends(get_observation),
    telemetry: Telemetry = Depends(get_telemetry),
    rng: random.Random = Depends(get_rng),
) -> DbQueryResponse | JSONResponse:
    with telemetry.tracer.start_as_current_span(
        "database_query",
        context=observation.child_context(),
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        try:
            span.set_attributes(
                {
                    "db.system": "postgresql",
                    "db.operation": "SELECT",
                    "db.table": "users",
                }
            )

            query_time = simulation.draw_query_time_ms(rng)
            rows = await simulation.run_simulated_query(query_time)

            span.add_event("Query executed successfully", {"duration": query_time})
            span.set_status(Status(StatusCode.OK))
        except Exception as exc:
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            logger.error("db_query_failed", error_type=type(exc).__name__, error=str(exc))
            return JSONResponse(status_code=500, content=ErrorResponse(error="Database error").model_dump())

    return DbQueryResponse(query_time=f"{query_time}ms", data=rows, timestamp=utc_timestamp())
