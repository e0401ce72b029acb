"""Artist-level aggregate models and the profile lifecycle state.

The lifecycle is an explicit enum persisted next to the track matrix.
:func:`derive_state` is the only place that turns a track count and a
target into a state; everything else reads the persisted value.

    ABSENT ──first merge──► STAGED ──len ≥ target──► BUILT
       ▲                       ▲                        │
       └──── repair / reset ───┴────────────────────────┘

Reset never deletes track profiles; it only moves the flag back so the
next run requests ``target - len(track_matrix)`` more tracks.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.models.track import TrackProfile


class LifecycleState(str, Enum):  # noqa: UP042
    ABSENT = "absent"
    STAGED = "staged"
    BUILT = "built"


def derive_state(track_count: int, target: int) -> LifecycleState:
    """Return the lifecycle state implied by *track_count* against *target*."""
    if track_count <= 0:
        return LifecycleState.ABSENT
    if track_count >= target:
        return LifecycleState.BUILT
    return LifecycleState.STAGED


class GenreSource(str, Enum):  # noqa: UP042
    """Provenance of a genre mapping, in priority order."""

    KNOWN = "known"
    AUDIO_ANALYSIS = "audio_analysis"
    NAME_INFERENCE = "name_inference"
    NONE = "none"


class GenreMapping(BaseModel):
    model_config = ConfigDict(frozen=True)

    genres: list[str] = Field(default_factory=list)
    source: GenreSource = GenreSource.NONE
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class RecentEvolution(BaseModel):
    """Feature deltas between recent releases and catalog-top tracks.

    ``status`` is ``"insufficient_data"`` unless both subsets are present.
    """

    model_config = ConfigDict(frozen=True)

    status: str = "insufficient_data"
    energy_change: float | None = None
    danceability_change: float | None = None
    valence_change: float | None = None
    tempo_change: float | None = None
    recent_tracks_count: int = 0
    top_tracks_count: int = 0


class ArtistProfile(BaseModel):
    """Persisted per-artist aggregate."""

    model_config = ConfigDict(frozen=True)

    entity_id: str
    track_matrix: list[TrackProfile] = Field(default_factory=list)
    genre_mapping: GenreMapping = Field(default_factory=GenreMapping)
    recent_evolution: RecentEvolution = Field(default_factory=RecentEvolution)
    average_features: dict[str, float] = Field(default_factory=dict)
    lifecycle_state: LifecycleState = LifecycleState.ABSENT
    target_track_count: int = Field(default=10, ge=1)
    version: int = 0
    updated_at: datetime | None = None
    built_at: datetime | None = None

    @property
    def track_ids(self) -> set[str]:
        return {t.track_id for t in self.track_matrix}

    @property
    def remaining(self) -> int:
        return max(0, self.target_track_count - len(self.track_matrix))

    def violates_built_invariant(self) -> bool:
        if self.lifecycle_state is not LifecycleState.BUILT:
            return False
        count = len(self.track_matrix)
        return count == 0 or count < self.target_track_count

    def to_document(self) -> dict[str, Any]:
        return {
            "trackMatrix": [t.to_document() for t in self.track_matrix],
            "genreMapping": self.genre_mapping.model_dump(mode="json"),
            "recentEvolution": self.recent_evolution.model_dump(mode="json"),
            "averageFeatures": dict(self.average_features),
            "lifecycleState": self.lifecycle_state.value,
            "targetTrackCount": self.target_track_count,
            "version": self.version,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
            "builtAt": self.built_at.isoformat() if self.built_at else None,
        }

    @classmethod
    def from_document(cls, entity_id: str, doc: dict[str, Any]) -> ArtistProfile:
        def _dt(raw: str | None) -> datetime | None:
            return datetime.fromisoformat(raw) if raw else None

        return cls(
            entity_id=entity_id,
            track_matrix=[TrackProfile.from_document(t) for t in doc.get("trackMatrix", [])],
            genre_mapping=GenreMapping(**(doc.get("genreMapping") or {})),
            recent_evolution=RecentEvolution(**(doc.get("recentEvolution") or {})),
            average_features=doc.get("averageFeatures") or {},
            lifecycle_state=LifecycleState(doc.get("lifecycleState", LifecycleState.ABSENT.value)),
            target_track_count=doc.get("targetTrackCount", 10),
            version=doc.get("version", 0),
            updated_at=_dt(doc.get("updatedAt")),
            built_at=_dt(doc.get("builtAt")),
        )


class ArtistEntity(BaseModel):
    """An artist known to the store, with its aggregate if one exists."""

    model_config = ConfigDict(frozen=True)

    entity_id: str
    name: str
    catalog_id: str | None = None
    genres: list[str] = Field(default_factory=list)
    profile: ArtistProfile | None = None

    @property
    def lifecycle_state(self) -> LifecycleState:
        return self.profile.lifecycle_state if self.profile else LifecycleState.ABSENT
