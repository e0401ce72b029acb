"""FastAPI routes for SoundMatrix.

Service dependencies are resolved from ``app.state`` (populated at startup
by ``main._build_all``) through ``Depends`` with the ``Annotated`` pattern,
so tests can assemble an app with mock services.

Endpoint                         Method  Description
-------------------------------  ------  ------------------------------------
/api/analyze                     POST    Features for one audio reference
/api/batch                       POST    ``/api/analyze`` for many references
/api/analyze-artist              POST    Staged artist analysis (+ persist)
/api/artists/{entity_id}         GET     Stored artist aggregate
/api/user-profile                POST    Build a listener sound profile
/api/user-profile/{user_id}      GET     Stored listener sound profile
/health                          GET     Liveness, uptime, store counts
/internal/metrics                GET     Store counts and request counters
"""

from __future__ import annotations

import asyncio
import time
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from src.api.schemas import (
    AnalyzeArtistRequest,
    AnalyzeArtistResponse,
    AnalyzeRequest,
    AnalyzeResponse,
    BatchAnalyzeRequest,
    BatchAnalyzeResponse,
    ErrorResponse,
    HealthResponse,
    UserProfileRequest,
)
from src.interfaces.profile_store import IProfileStore
from src.services.artist_profile_service import ArtistProfileService
from src.services.feature_service import FeatureService
from src.services.user_profile_service import UserProfileService
from src.utils.concurrency import throttled_gather
from src.utils.errors import ExtractionError
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api")
ops_router = APIRouter()

_DEFAULT_BATCH_CONCURRENCY = 5
_METRICS_SCAN_LIMIT = 500


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def _get_feature_service(request: Request) -> FeatureService:
    return request.app.state.feature_service


def _get_artist_service(request: Request) -> ArtistProfileService:
    return request.app.state.artist_service


def _get_user_service(request: Request) -> UserProfileService:
    return request.app.state.user_service


def _get_store(request: Request) -> IProfileStore | None:
    return getattr(request.app.state, "store", None)


FeatureServiceDep = Annotated[FeatureService, Depends(_get_feature_service)]
ArtistServiceDep = Annotated[ArtistProfileService, Depends(_get_artist_service)]
UserServiceDep = Annotated[UserProfileService, Depends(_get_user_service)]
StoreDep = Annotated[IProfileStore | None, Depends(_get_store)]


# ---------------------------------------------------------------------------
# Feature analysis
# ---------------------------------------------------------------------------


async def _analyze_one(features: FeatureService, body: AnalyzeRequest) -> AnalyzeResponse:
    try:
        lookup = await features.analyze(body.audio_reference, body.track_id)
    except ExtractionError as exc:
        _logger.warning("analyze_failed", track_id=body.track_id, error=str(exc))
        return AnalyzeResponse(success=False, error=exc.message)
    return AnalyzeResponse(
        success=True,
        cached=lookup.cached,
        fingerprint=lookup.fingerprint,
        features=lookup.vector.features,
        embedding=lookup.vector.embedding,
    )


@router.post(
    "/analyze",
    response_model=AnalyzeResponse,
    response_model_by_alias=True,
    responses={502: {"model": AnalyzeResponse}},
    summary="Extract (or fetch cached) features for one audio reference",
)
async def analyze(body: AnalyzeRequest, features: FeatureServiceDep) -> Any:
    result = await _analyze_one(features, body)
    if not result.success:
        return JSONResponse(status_code=502, content=result.model_dump(by_alias=True))
    return result


@router.post(
    "/batch",
    response_model=BatchAnalyzeResponse,
    response_model_by_alias=True,
    summary="Analyse many references with bounded concurrency",
)
async def analyze_batch(body: BatchAnalyzeRequest, features: FeatureServiceDep) -> BatchAnalyzeResponse:
    semaphore = asyncio.Semaphore(body.concurrency or _DEFAULT_BATCH_CONCURRENCY)
    outcomes = await throttled_gather(
        [_analyze_one(features, ref) for ref in body.references],
        semaphore=semaphore,
    )
    results: list[AnalyzeResponse] = []
    for outcome in outcomes:
        if isinstance(outcome, BaseException):
            _logger.error("batch_reference_failed", error=str(outcome))
            results.append(AnalyzeResponse(success=False, error=str(outcome)))
        else:
            results.append(outcome)
    succeeded = sum(1 for r in results if r.success)
    return BatchAnalyzeResponse(results=results, succeeded=succeeded, failed=len(results) - succeeded)


# ---------------------------------------------------------------------------
# Artist analysis
# ---------------------------------------------------------------------------


@router.post(
    "/analyze-artist",
    response_model=AnalyzeArtistResponse,
    response_model_by_alias=True,
    summary="Run the staged artist analysis",
)
async def analyze_artist(body: AnalyzeArtistRequest, service: ArtistServiceDep) -> AnalyzeArtistResponse:
    """Always answers 200 with a structured body; ``success`` carries the outcome."""
    result = await service.analyze(body.to_domain())
    _logger.info(
        "analyze_artist_complete",
        artist=body.artist_name,
        success=result.success,
        partial=result.partial,
        tracks=result.total_track_count,
    )
    return AnalyzeArtistResponse.from_result(result)


@router.get(
    "/artists/{entity_id}",
    responses={404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    summary="Fetch a stored artist aggregate",
)
async def get_artist(entity_id: str, store: StoreDep) -> dict[str, Any]:
    if store is None:
        raise HTTPException(status_code=503, detail="Profile store unavailable")
    entity = await store.get_artist(entity_id)
    if entity is None:
        raise HTTPException(status_code=404, detail=f"Unknown artist: {entity_id}")
    return {
        "entityId": entity.entity_id,
        "name": entity.name,
        "catalogId": entity.catalog_id,
        "genres": list(entity.genres),
        "profile": entity.profile.to_document() if entity.profile else None,
    }


# ---------------------------------------------------------------------------
# Listener profiles
# ---------------------------------------------------------------------------


@router.post("/user-profile", summary="Build a listener sound profile from played tracks")
async def build_user_profile(body: UserProfileRequest, service: UserServiceDep) -> dict[str, Any]:
    return await service.build(
        body.user_id,
        [t.to_descriptor() for t in body.tracks],
        fast_mode=body.fast_mode,
    )


@router.get(
    "/user-profile/{user_id}",
    responses={404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    summary="Fetch a stored listener sound profile",
)
async def get_user_profile(user_id: str, store: StoreDep) -> dict[str, Any]:
    if store is None:
        raise HTTPException(status_code=503, detail="Profile store unavailable")
    document = await store.get_user_profile(user_id)
    if document is None:
        raise HTTPException(status_code=404, detail=f"No profile for user: {user_id}")
    return document


# ---------------------------------------------------------------------------
# Ops
# ---------------------------------------------------------------------------


@ops_router.get("/health", response_model=HealthResponse, response_model_by_alias=True)
async def health_check(request: Request, store: StoreDep) -> HealthResponse:
    """Report liveness, uptime, store connectivity and lifecycle counts."""
    started = getattr(request.app.state, "started_at", time.monotonic())
    engine = getattr(request.app.state, "engine", None)
    counts: dict[str, Any] = {}
    connected = False
    if store is not None:
        try:
            counts = await store.stats()
            connected = True
        except Exception as exc:  # noqa: BLE001
            _logger.warning("health_store_unreachable", error=str(exc))

    return HealthResponse(
        status="healthy" if connected else "degraded",
        version=getattr(request.app.state, "version", "0.1.0"),
        uptime_seconds=round(time.monotonic() - started, 1),
        store_connected=connected,
        providers=engine.provider_names() if engine is not None else [],
        counts=counts,
    )


@ops_router.get("/internal/metrics")
async def metrics(request: Request, store: StoreDep) -> dict[str, Any]:
    counters = getattr(request.app.state, "request_counters", None)
    body: dict[str, Any] = {"requests": counters.to_dict() if counters is not None else {}}
    if store is not None:
        stats = await store.stats()
        checked, violating = await store.find_built_violations(_METRICS_SCAN_LIMIT)
        body["store"] = {
            "audioFeaturesCached": stats.get("cached_features", 0),
            "profilesByState": stats.get("by_state", {}),
            "artists": stats.get("artists", 0),
            "userProfiles": stats.get("user_profiles", 0),
            "builtChecked": checked,
            "builtViolations": len(violating),
        }
    return body
