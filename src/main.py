"""SoundMatrix FastAPI application entry point.

Wires together all providers, services, and routes via dependency injection.
Loads configuration from ``.env`` and ``config/config.yaml``, configures
structured logging, and exposes the API and ops routers.

``build_components`` is shared with the maintenance CLI (``python -m
src.cli``) so both surfaces run exactly the same object graph.
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog
import uvicorn
from fastapi import FastAPI

from src.api.middleware import (
    CorrelationIdMiddleware,
    ErrorHandlingMiddleware,
    RequestCounters,
    RequestLoggingMiddleware,
    configure_cors,
)
from src.api.routes import ops_router
from src.api.routes import router as api_router
from src.config.loader import load_config
from src.config.settings import Settings
from src.config.tuning import build_tuning
from src.pipeline.batch_driver import BatchCoverageDriver
from src.pipeline.lifecycle import ProfileLifecycleManager
from src.pipeline.orchestrator import StagedAnalysisOrchestrator
from src.pipeline.reconciliation import ReconciliationScanner
from src.providers.cache.memory_cache import MemoryCacheProvider
from src.providers.catalog import (
    BandcampProvider,
    DeezerProvider,
    ITunesProvider,
    SoundCloudProvider,
    SpotifyProvider,
    YouTubeProvider,
)
from src.providers.extraction import HTTPFeatureExtractor
from src.providers.store import SQLiteProfileStore
from src.services.artist_profile_service import ArtistProfileService
from src.services.feature_service import FeatureService
from src.services.resolution_engine import ResolutionEngine
from src.services.track_catalog import TrackCatalogService
from src.services.user_profile_service import UserProfileService
from src.utils.logging import configure_logging, get_logger

_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()
config = load_config(settings=settings)

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Full DI assembly
# ---------------------------------------------------------------------------


def build_components(app_settings: Settings, app_config: dict[str, Any]) -> dict[str, Any]:
    """Construct every provider and service instance.

    Returns a flat dict of named components; the web app stores them on
    ``app.state``.  The caller owns ``http_client`` and must close it, and
    must ``await store.initialize()`` before first use.
    """
    tuning = build_tuning(app_config)
    pacing: dict[str, float] = app_config.get("pacing", {})

    # -- Shared resources --
    http_client = httpx.AsyncClient(timeout=30.0, follow_redirects=True)
    cache = MemoryCacheProvider(max_size=app_settings.feature_cache_size, ttl=app_settings.feature_cache_ttl)
    store = SQLiteProfileStore(db_path=app_settings.profile_db_path)

    # -- Catalog adapters, grouped by the role they play in resolution --
    spotify = SpotifyProvider(http_client, app_settings, cache=cache, min_interval=pacing.get("spotify", 0.1))
    itunes = ITunesProvider(http_client, app_settings, min_interval=pacing.get("itunes", 0.35))
    deezer = DeezerProvider(http_client, min_interval=pacing.get("deezer", 0.2))
    soundcloud = SoundCloudProvider(http_client, app_settings, min_interval=pacing.get("soundcloud", 0.25))
    youtube = YouTubeProvider(http_client, app_settings, min_interval=pacing.get("youtube", 0.2))
    bandcamp = BandcampProvider(http_client, app_settings, min_interval=pacing.get("bandcamp", 2.0))

    engine = ResolutionEngine(
        primary=spotify,
        alt_catalogs=[itunes, deezer],
        community=[soundcloud],
        aggregators=[youtube, bandcamp],
        config=tuning["resolution"],
    )

    # -- Services --
    extractor = HTTPFeatureExtractor(http_client, app_settings)
    feature_service = FeatureService(extractor, store=store, cache=cache)
    catalog = TrackCatalogService(primary=spotify, alternative=itunes, config=tuning["stage"])
    orchestrator = StagedAnalysisOrchestrator(catalog, engine, feature_service, config=tuning["stage"])
    lifecycle = ProfileLifecycleManager(store=store)
    artist_service = ArtistProfileService(orchestrator, lifecycle, store=store, config=tuning["lifecycle"])
    user_service = UserProfileService(engine, feature_service, store=store)
    batch_driver = BatchCoverageDriver(
        store,
        artist_service,
        lifecycle,
        batch_config=tuning["batch"],
        lifecycle_config=tuning["lifecycle"],
    )
    scanner = ReconciliationScanner(store)

    return {
        "http_client": http_client,
        "cache": cache,
        "store": store,
        "engine": engine,
        "feature_service": feature_service,
        "orchestrator": orchestrator,
        "lifecycle": lifecycle,
        "artist_service": artist_service,
        "user_service": user_service,
        "batch_driver": batch_driver,
        "scanner": scanner,
        "tuning": tuning,
    }


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise all providers and services on startup, clean up on shutdown."""
    components = _build_all()
    for key, value in components.items():
        setattr(application.state, key, value)
    application.state.started_at = time.monotonic()
    application.state.version = _VERSION

    await components["store"].initialize()

    _logger.info(
        "app_startup",
        version=_VERSION,
        environment=settings.app_env,
        catalogs=components["engine"].provider_names(),
        store=components["store"].get_provider_name(),
    )

    yield

    # -- Shutdown: close shared httpx client --
    http_client: httpx.AsyncClient = components["http_client"]
    await http_client.aclose()
    _logger.info("app_shutdown", message="HTTP client closed")


def _build_all() -> dict[str, Any]:
    return build_components(settings, config)


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="SoundMatrix API",
        version=_VERSION,
        description=(
            "Resolve playable audio for an artist's tracks across several "
            "catalogs, extract audio features, and maintain per-artist and "
            "per-listener sound profiles."
        ),
        lifespan=_lifespan,
    )

    counters = RequestCounters()
    application.state.request_counters = counters

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware, counters=counters)
    application.add_middleware(CorrelationIdMiddleware)
    configure_cors(application)

    application.include_router(api_router)
    application.include_router(ops_router)
    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "src.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
