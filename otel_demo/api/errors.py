from __future__ import annotations

from http import HTTPStatus

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from otel_demo.models.schemas import HttpErrorResponse, ServerErrorResponse
from otel_demo.services.runtime import utc_timestamp


def internal_error_response() -> JSONResponse:
    """Generic 500 body; never carries exception details."""
    body = ServerErrorResponse(error="Internal Server Error", timestamp=utc_timestamp())
    return JSONResponse(status_code=500, content=body.model_dump())


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if isinstance(exc.detail, str) and exc.detail:
        error = exc.detail
    else:
        error = HTTPStatus(exc.status_code).phrase

    body = HttpErrorResponse(error=error, path=request.url.path, timestamp=utc_timestamp())
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(), headers=exc.headers)
