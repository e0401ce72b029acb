"""API middleware: CORS, correlation ids, request logging and error handling.

Starlette middleware is a stack (last added, first executed).  ``main.py``
adds them so a request flows::

    Client -> CorrelationId -> RequestLogging -> ErrorHandling -> route

The correlation id is therefore bound before anything is logged, and
RequestLoggingMiddleware sees the final status code even when
ErrorHandlingMiddleware replaced an exception with a JSON error body.
"""

from __future__ import annotations

import time
import uuid
from collections import Counter

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.api.schemas import ErrorResponse
from src.utils.errors import (
    ProviderResponseError,
    ProviderUnavailableError,
    RateLimitError,
    SoundMatrixError,
)
from src.utils.logging import bind_correlation_id, clear_request_context, get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

CORRELATION_HEADER = "x-correlation-id"

_PROVIDER_ERRORS = (ProviderUnavailableError, RateLimitError, ProviderResponseError)


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Add CORS middleware; ``["*"]`` unless explicit origins are given."""
    origins = allowed_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


# ---------------------------------------------------------------------------
# Correlation id
# ---------------------------------------------------------------------------


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Echo ``x-correlation-id`` (or a fresh uuid4) and bind it for logging."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id
        clear_request_context()
        bind_correlation_id(correlation_id)
        try:
            response = await call_next(request)
        finally:
            clear_request_context()
        response.headers[CORRELATION_HEADER] = correlation_id
        return response


# ---------------------------------------------------------------------------
# Request logging
# ---------------------------------------------------------------------------


class RequestCounters:
    """Process-wide request counters exposed by ``/internal/metrics``."""

    def __init__(self) -> None:
        self.total = 0
        self.by_status: Counter = Counter()
        self.by_path: Counter = Counter()
        self.started_at = time.time()

    def record(self, path: str, status_code: int) -> None:
        self.total += 1
        self.by_status[str(status_code)] += 1
        self.by_path[path] += 1

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "byStatus": dict(self.by_status),
            "byPath": dict(self.by_path),
            "uptimeSeconds": round(time.time() - self.started_at, 1),
        }


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request with method, path, status code, and duration."""

    def __init__(self, app, counters: RequestCounters | None = None) -> None:
        super().__init__(app)
        self._counters = counters

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        response: Response | None = None

        try:
            response = await call_next(request)
            return response
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            status_code = response.status_code if response else 500
            path = str(request.url.path)
            if self._counters is not None:
                self._counters.record(path, status_code)
            _logger.info(
                "http_request",
                method=request.method,
                path=path,
                status=status_code,
                duration_ms=duration_ms,
            )


# ---------------------------------------------------------------------------
# Error handling
# ---------------------------------------------------------------------------


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Turn leaked exceptions into a sanitised JSON :class:`ErrorResponse`.

    Provider failures answer 503, everything else 500.  Details stay in the
    server log.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        correlation_id = getattr(request.state, "correlation_id", None)
        try:
            return await call_next(request)
        except SoundMatrixError as exc:
            status_code = 503 if isinstance(exc, _PROVIDER_ERRORS) else 500
            _logger.error(
                "application_error",
                error_type=type(exc).__name__,
                message=exc.message,
                provider=exc.provider_name,
                path=str(request.url.path),
                status=status_code,
            )
            body = ErrorResponse(error=type(exc).__name__, detail=exc.message, correlation_id=correlation_id)
            return JSONResponse(status_code=status_code, content=body.model_dump())
        except Exception as exc:  # noqa: BLE001
            _logger.exception("unhandled_error", error_type=type(exc).__name__, path=str(request.url.path))
            body = ErrorResponse(error="InternalServerError", detail="Internal server error", correlation_id=correlation_id)
            return JSONResponse(status_code=500, content=body.model_dump())
