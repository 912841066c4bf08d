from __future__ import annotations

from fastapi import APIRouter, Depends

from otel_demo.api.dependencies import get_observation
from otel_demo.models.schemas import HealthResponse, MemoryResponse, MemorySnapshot, MemoryUsageMb
from otel_demo.observability.context import RequestObservation
from otel_demo.services.runtime import memory_usage, uptime_seconds, utc_timestamp

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    usage = memory_usage()
    return HealthResponse(
        timestamp=utc_timestamp(),
        uptime=uptime_seconds(),
        memory=MemorySnapshot(
            rss=usage.rss,
            heap_total=usage.heap_total,
            heap_used=usage.heap_used,
            external=usage.external,
        ),
    )


@router.get("/memory", response_model=MemoryResponse)
async def memory(observation: RequestObservation = Depends(get_observation)) -> MemoryResponse:
    usage = memory_usage()
    observation.set_attributes(
        {
            "memory.heap_used": usage.heap_used,
            "memory.heap_total": usage.heap_total,
            "memory.external": usage.external,
            "memory.rss": usage.rss,
        }
    )
    return MemoryResponse(memory=MemoryUsageMb(**usage.as_megabytes()), timestamp=utc_timestamp())
