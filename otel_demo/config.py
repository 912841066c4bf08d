import logging
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", populate_by_name=True)

    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8080, alias="PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    service_name: str = Field(default="observability-demo", alias="OTEL_SERVICE_NAME")
    service_version: str = Field(default="1.0.0", alias="SERVICE_VERSION")
    environment: str = Field(default="development", alias="ENVIRONMENT")

    otlp_endpoint: str = Field(default="http://otel-collector:4317", alias="OTEL_EXPORTER_OTLP_ENDPOINT")
    telemetry_export_enabled: bool = Field(default=True, alias="TELEMETRY_EXPORT_ENABLED")
    auto_instrumentation_enabled: bool = Field(default=True, alias="AUTO_INSTRUMENTATION_ENABLED")
    metric_export_interval_ms: int = Field(default=60_000, alias="OTEL_METRIC_EXPORT_INTERVAL")
    shutdown_grace_seconds: float = Field(default=5.0, gt=0, alias="SHUTDOWN_GRACE_SECONDS")

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        name = value.strip().upper()
        if not isinstance(logging.getLevelName(name), int):
            raise ValueError(f"unknown log level: {value!r}")
        return name

    @property
    def logging_level(self) -> int:
        return logging.getLevelName(self.log_level)

    @property
    def shutdown_grace_millis(self) -> int:
        return int(self.shutdown_grace_seconds * 1000)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
