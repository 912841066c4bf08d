from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class MemorySnapshot(_CamelModel):
    rss: int
    heap_total: int = Field(alias="heapTotal")
    heap_used: int = Field(alias="heapUsed")
    external: int


class HealthResponse(BaseModel):
    status: str = "healthy"
    timestamp: str
    uptime: float
    memory: MemorySnapshot


class HelloResponse(_CamelModel):
    message: str
    delay: int
    request_id: str = Field(alias="requestId")


class FlakyResponse(BaseModel):
    message: str = "Success!"
    timestamp: str
    success: bool = True


class CpuIntensiveResponse(BaseModel):
    message: str = "CPU intensive operation completed"
    iterations: int
    result: int
    timestamp: str


class MemoryUsageMb(_CamelModel):
    heap_used: str = Field(alias="heapUsed")
    heap_total: str = Field(alias="heapTotal")
    external: str
    rss: str


class MemoryResponse(BaseModel):
    memory: MemoryUsageMb
    timestamp: str


class UserRecord(BaseModel):
    id: int
    name: str
    email: str


class DbQueryResponse(_CamelModel):
    message: str = "Database query completed"
    query_time: str = Field(alias="queryTime")
    data: list[UserRecord]
    timestamp: str


class MetricValues(_CamelModel):
    custom_value: float = Field(alias="customValue")
    temperature: float


class MetricsDemoResponse(BaseModel):
    message: str = "Custom metrics generated"
    timestamp: str
    values: MetricValues


class ErrorResponse(BaseModel):
    error: str


class ServerErrorResponse(ErrorResponse):
    timestamp: str


class HttpErrorResponse(ErrorResponse):
    path: str
    timestamp: str
