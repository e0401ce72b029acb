"""Pydantic request/response schemas for the SoundMatrix API.

Wire names are camelCase (``artistName``, ``trackMatrix``); Python
attributes stay snake_case.  Every model accepts either spelling on input
(``populate_by_name``) and the routes serialise with ``by_alias``.

Convention: request schemas end with "Request", response schemas end with
"Response".
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.models.analysis import ArtistAnalysisRequest, ArtistAnalysisResult
from src.models.resolution import ResolutionStrategy
from src.models.track import TrackDescriptor


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Single-reference feature analysis
# ---------------------------------------------------------------------------


class AnalyzeRequest(_CamelModel):
    """One audio reference to analyse (or fetch from the fingerprint cache)."""

    audio_reference: str = Field(..., min_length=1)
    track_id: str | None = None


class AnalyzeResponse(_CamelModel):
    success: bool
    cached: bool = False
    fingerprint: str | None = None
    features: dict[str, float] = Field(default_factory=dict)
    embedding: list[float] = Field(default_factory=list)
    error: str | None = None


class BatchAnalyzeRequest(_CamelModel):
    references: list[AnalyzeRequest] = Field(..., min_length=1, max_length=200)
    concurrency: int | None = Field(default=None, ge=1, le=20)


class BatchAnalyzeResponse(_CamelModel):
    results: list[AnalyzeResponse]
    succeeded: int
    failed: int


# ---------------------------------------------------------------------------
# Artist analysis
# ---------------------------------------------------------------------------


class AnalyzeArtistRequest(_CamelModel):
    """Artist analysis request body.

    ``entityId`` ties the call to a stored aggregate: ``maxTracks`` becomes
    its target and only the missing tracks are requested.
    """

    artist_name: str = Field(..., min_length=1)
    entity_id: str | None = None
    catalog_id: str | None = None
    max_tracks: int = Field(default=20, ge=1, le=60)
    include_recent_releases: bool = True
    existing_genres: list[str] = Field(default_factory=list)
    resolution_strategy: ResolutionStrategy | None = None
    fast_mode: bool = False
    max_resolution_attempts: int | None = Field(default=None, ge=1)
    persist: bool = True

    def to_domain(self) -> ArtistAnalysisRequest:
        return ArtistAnalysisRequest(
            artist_name=self.artist_name,
            entity_id=self.entity_id,
            catalog_id=self.catalog_id,
            max_tracks=self.max_tracks,
            include_recent_releases=self.include_recent_releases,
            existing_genres=self.existing_genres,
            strategy=self.resolution_strategy,
            fast_mode=self.fast_mode,
            max_resolution_attempts=self.max_resolution_attempts,
            persist=self.persist,
        )


class AnalyzeArtistResponse(_CamelModel):
    success: bool
    partial: bool = False
    fail_subtype: str | None = None
    error: str | None = None
    artist_name: str
    entity_id: str | None = None
    track_matrix: list[dict[str, Any]] = Field(default_factory=list)
    genre_mapping: dict[str, Any] = Field(default_factory=dict)
    recent_evolution: dict[str, Any] = Field(default_factory=dict)
    average_features: dict[str, float] = Field(default_factory=dict)
    inferred_features: dict[str, Any] | None = None
    lifecycle_state: str | None = None
    persisted: bool = False
    total_track_count: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)
    diagnostics: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_result(cls, result: ArtistAnalysisResult) -> AnalyzeArtistResponse:
        return cls(
            success=result.success,
            partial=result.partial,
            fail_subtype=result.fail_subtype.value if result.fail_subtype else None,
            error=result.error,
            artist_name=result.artist_name,
            entity_id=result.entity_id,
            track_matrix=[t.to_document() for t in result.track_matrix],
            genre_mapping=result.genre_mapping.model_dump(mode="json"),
            recent_evolution=_camel_keys(result.recent_evolution.model_dump(mode="json")),
            average_features=dict(result.average_features),
            inferred_features=result.inferred_features,
            lifecycle_state=result.lifecycle_state.value if result.lifecycle_state else None,
            persisted=result.persisted,
            total_track_count=result.total_track_count,
            metadata=result.metadata,
            diagnostics=result.diagnostics,
        )


def _camel_keys(data: dict[str, Any]) -> dict[str, Any]:
    return {to_camel(key): value for key, value in data.items()}


# ---------------------------------------------------------------------------
# Listener profiles
# ---------------------------------------------------------------------------


class UserTrackInput(_CamelModel):
    track_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    artists: list[str] = Field(default_factory=list)
    popularity: int = 0
    preview_url: str | None = None

    def to_descriptor(self) -> TrackDescriptor:
        return TrackDescriptor(
            track_id=self.track_id,
            name=self.name,
            artists=self.artists,
            popularity=self.popularity,
            known_reference=self.preview_url,
        )


class UserProfileRequest(_CamelModel):
    user_id: str = Field(..., min_length=1)
    tracks: list[UserTrackInput] = Field(..., min_length=1, max_length=100)
    fast_mode: bool = True


# ---------------------------------------------------------------------------
# Ops
# ---------------------------------------------------------------------------


class HealthResponse(_CamelModel):
    """Application health check response."""

    status: str
    version: str
    uptime_seconds: float
    store_connected: bool
    providers: list[str] = Field(default_factory=list)
    counts: dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None
    correlation_id: str | None = None
