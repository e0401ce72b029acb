"""SoundMatrix API layer: routes, schemas and middleware."""

from src.api.middleware import (
    CorrelationIdMiddleware,
    ErrorHandlingMiddleware,
    RequestCounters,
    RequestLoggingMiddleware,
    configure_cors,
)
from src.api.routes import ops_router, router
from src.api.schemas import (
    AnalyzeArtistRequest,
    AnalyzeArtistResponse,
    AnalyzeRequest,
    AnalyzeResponse,
    ErrorResponse,
    HealthResponse,
)

__all__ = [
    "CorrelationIdMiddleware",
    "ErrorHandlingMiddleware",
    "RequestCounters",
    "RequestLoggingMiddleware",
    "configure_cors",
    "ops_router",
    "router",
    "AnalyzeArtistRequest",
    "AnalyzeArtistResponse",
    "AnalyzeRequest",
    "AnalyzeResponse",
    "ErrorResponse",
    "HealthResponse",
]
