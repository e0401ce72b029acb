"""Request and result models for one artist analysis.

``ArtistAnalysisRequest`` is what the API and the batch driver hand to the
service; ``OrchestrationResult`` is what the staged orchestrator returns;
``ArtistAnalysisResult`` is the structured body every caller gets back,
success or not.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.models.profile import GenreMapping, LifecycleState, RecentEvolution
from src.models.resolution import ResolutionStrategy
from src.models.track import TrackProfile


class FailSubtype(str, Enum):  # noqa: UP042
    """Why an artist produced no track profiles."""

    NO_TRACKS = "no_tracks"
    NO_PREVIEW = "no_preview"
    NO_TRACKS_GENRE_ONLY = "no_tracks_genre_only"
    NO_PREVIEW_GENRE_ONLY = "no_preview_genre_only"
    EXTRACTION_FAILED = "extraction_failed"


class ArtistAnalysisRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    artist_name: str = Field(min_length=1)
    entity_id: str | None = None
    catalog_id: str | None = None
    max_tracks: int = Field(default=20, ge=1, le=60)
    include_recent_releases: bool = True
    existing_genres: list[str] = Field(default_factory=list)
    # None means the configured default strategy.
    strategy: ResolutionStrategy | None = None
    fast_mode: bool = False
    max_resolution_attempts: int | None = Field(default=None, ge=1)
    # Track identities already present in the aggregate; never re-analysed.
    exclude_track_ids: frozenset[str] = Field(default_factory=frozenset)
    persist: bool = True


class OrchestrationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    profiles: list[TrackProfile] = Field(default_factory=list)
    had_initial_tracks: bool = False
    initial_track_count: int = 0
    references_found: int = 0
    round2_executed: bool = False
    round1_success_rate: float = 0.0
    failure_reasons: list[str] = Field(default_factory=list)
    elapsed_seconds: float = 0.0
    diagnostics: dict[str, Any] = Field(default_factory=dict)

    @property
    def attempted(self) -> int:
        rounds = self.diagnostics.get("rounds", {})
        return sum(r.get("attempted", 0) for r in rounds.values())


class ArtistAnalysisResult(BaseModel):
    """Structured response of ``POST /api/analyze-artist``."""

    model_config = ConfigDict(frozen=True)

    success: bool
    partial: bool = False
    fail_subtype: FailSubtype | None = None
    error: str | None = None
    artist_name: str
    entity_id: str | None = None
    track_matrix: list[TrackProfile] = Field(default_factory=list)
    genre_mapping: GenreMapping = Field(default_factory=GenreMapping)
    recent_evolution: RecentEvolution = Field(default_factory=RecentEvolution)
    average_features: dict[str, float] = Field(default_factory=dict)
    inferred_features: dict[str, Any] | None = None
    lifecycle_state: LifecycleState | None = None
    persisted: bool = False
    total_track_count: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)
    diagnostics: dict[str, Any] = Field(default_factory=dict)
