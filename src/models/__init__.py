"""SoundMatrix domain models: re-exports all public model classes.

Submodules by concern:
    - resolution.py   - source tags, strategies, per-track resolution outcome
    - track.py        - upstream track descriptors, feature vectors, track profiles
    - profile.py      - artist aggregate, genre mapping, lifecycle state
    - analysis.py     - artist analysis request / orchestration / response
    - diagnostics.py  - mutable per-artist diagnostics context
"""

from __future__ import annotations

from src.models.analysis import (
    ArtistAnalysisRequest,
    ArtistAnalysisResult,
    FailSubtype,
    OrchestrationResult,
)
from src.models.diagnostics import AnalysisDiagnostics, RoundCounters
from src.models.profile import (
    ArtistEntity,
    ArtistProfile,
    GenreMapping,
    GenreSource,
    LifecycleState,
    RecentEvolution,
    derive_state,
)
from src.models.resolution import ResolutionOutcome, ResolutionStrategy, SourceTag
from src.models.track import AlbumInfo, FeatureVector, TrackDescriptor, TrackProfile

__all__ = [
    "AlbumInfo",
    "AnalysisDiagnostics",
    "ArtistAnalysisRequest",
    "ArtistAnalysisResult",
    "ArtistEntity",
    "ArtistProfile",
    "FailSubtype",
    "FeatureVector",
    "GenreMapping",
    "GenreSource",
    "LifecycleState",
    "OrchestrationResult",
    "RecentEvolution",
    "ResolutionOutcome",
    "ResolutionStrategy",
    "RoundCounters",
    "SourceTag",
    "TrackDescriptor",
    "TrackProfile",
    "derive_state",
]
