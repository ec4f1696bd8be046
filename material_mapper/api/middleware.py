"""HTTP middleware for the Material Mapper API.

Three concerns are layered onto the app in ``main.create_app``:

* CORS, with origins taken from ``app.cors_origins`` in the YAML config.
* Request correlation: every request gets a request id (the caller's
  ``X-Request-ID`` or a generated one) bound into the structlog context,
  so every log line emitted while serving it carries the id.  The id is
  echoed back on the response, and the access log line also names the
  analysis run that was current when the request finished.
* Mapping of ``MaterialMapperError`` subclasses to JSON error bodies.

Starlette runs middleware last-added-first, so ``RequestLoggingMiddleware``
is added after ``ErrorHandlingMiddleware`` and logs the status the client
actually receives.
"""

from __future__ import annotations

import time
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from material_mapper.api.schemas import ErrorResponse
from material_mapper.utils.errors import (
    AnalysisFailedError,
    MaterialMapperError,
    ProtocolError,
    TransportError,
)
from material_mapper.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
_MAX_REQUEST_ID_LENGTH = 64

# Backend-side failures surface as a bad gateway; everything else is ours.
_STATUS_BY_ERROR: dict[type[MaterialMapperError], int] = {
    TransportError: 502,
    ProtocolError: 502,
    AnalysisFailedError: 502,
}


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Add CORS middleware to the application.

    Without explicit origins any origin is allowed, but then credentials
    are not, since browsers reject a wildcard origin with credentials.
    """
    origins = list(allowed_origins or [])
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_credentials=bool(origins),
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )


# ---------------------------------------------------------------------------
# Request correlation and access log
# ---------------------------------------------------------------------------


def _request_id(request: Request) -> str:
    supplied = request.headers.get(REQUEST_ID_HEADER, "").strip()
    if supplied and len(supplied) <= _MAX_REQUEST_ID_LENGTH:
        return supplied
    return uuid4().hex[:12]


def _current_run_id(request: Request) -> str | None:
    runner = getattr(request.app.state, "runner", None)
    return runner.run_id if runner is not None else None


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Bind a request id for the duration of the request and log the outcome."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        request_id = _request_id(request)
        structlog.contextvars.bind_contextvars(request_id=request_id)
        start = time.perf_counter()
        response: Response | None = None

        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            _logger.info(
                "http_request",
                method=request.method,
                path=request.url.path,
                status=response.status_code if response else 500,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
                run_id=_current_run_id(request),
            )
            structlog.contextvars.unbind_contextvars("request_id")


# ---------------------------------------------------------------------------
# Error Handling
# ---------------------------------------------------------------------------


def _status_for(exc: MaterialMapperError) -> int:
    for error_type, status in _STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            return status
    return 500


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Turn a ``MaterialMapperError`` escaping a route into an ``ErrorResponse``.

    The body carries the error class name and message only.  Other
    exceptions are left to FastAPI's default 500 handler.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except MaterialMapperError as exc:
            status = _status_for(exc)
            _logger.error(
                "application_error",
                error_type=type(exc).__name__,
                message=exc.message,
                provider=exc.provider_name,
                path=request.url.path,
                status=status,
            )
            body = ErrorResponse(error=type(exc).__name__, detail=exc.message)
            return JSONResponse(status_code=status, content=body.model_dump())
