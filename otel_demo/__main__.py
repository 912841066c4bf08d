from __future__ import annotations

import argparse

import uvicorn

from otel_demo.config import get_settings
from otel_demo.main import create_app
from otel_demo.observability.logging import configure_logging


def main() -> None:
    parser = argparse.ArgumentParser(description="Observability demo API")
    parser.add_argument("--host", default=None, help="Bind address (defaults to HOST)")
    parser.add_argument("--port", type=int, default=None, help="Listen port (defaults to PORT)")
    args = parser.parse_args()

    settings = get_settings()
    overrides = {key: value for key, value in (("host", args.host), ("port", args.port)) if value is not None}
    if overrides:
        settings = settings.model_copy(update=overrides)

    configure_logging(settings.logging_level)
    app = create_app(settings)

    # log_config=None keeps the structlog handlers installed above.
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_config=None,
        timeout_graceful_shutdown=max(1, round(settings.shutdown_grace_seconds)),
    )


if __name__ == "__main__":
    main()
