"""Track-level models: descriptors, feature vectors, and track profiles.

``TrackDescriptor`` is what upstream catalogs hand us; it is consumed and
never mutated.  ``TrackProfile`` is the persisted, immutable record created
once per successful extraction and appended to an artist's track matrix.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.models.resolution import SourceTag


class AlbumInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    album_id: str | None = None
    name: str = ""
    release_date: str | None = None
    album_type: str | None = None


class TrackDescriptor(BaseModel):
    """Identity of one upstream track.

    ``known_reference`` is the preview URL the upstream catalog already
    returned, if any; ``known_source`` records which role that catalog
    plays so a restored reference keeps its original tag.
    """

    model_config = ConfigDict(frozen=True)

    track_id: str
    name: str
    artists: list[str] = Field(default_factory=list)
    popularity: int = 0
    is_recent_release: bool = False
    album: AlbumInfo | None = None
    known_reference: str | None = None
    known_source: SourceTag = SourceTag.NONE
    origin: str = "spotify"

    @property
    def primary_artist(self) -> str:
        return self.artists[0] if self.artists else ""


class FeatureVector(BaseModel):
    """Output of the feature-extraction collaborator for one reference.

    ``features`` holds the scalar descriptors (``energy``, ``tempo``,
    ``spectral_centroid``...), ``embedding`` the fixed-length vector.
    """

    model_config = ConfigDict(frozen=True)

    features: dict[str, float] = Field(default_factory=dict)
    embedding: list[float] = Field(default_factory=list)
    analysis_source: str = "extractor"
    analysis_version: str | None = None
    fingerprint: str | None = None

    def get(self, name: str, default: float | None = None) -> float | None:
        return self.features.get(name, default)


class TrackProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    track_id: str
    name: str
    artist: str = ""
    popularity: int = 0
    is_recent_release: bool = False
    album: AlbumInfo | None = None
    audio_source: SourceTag
    audio_reference: str
    provider: str | None = None
    resolution_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    features: FeatureVector
    analysis_round: int = Field(default=1, ge=1, le=2)
    analyzed_at: datetime = Field(default_factory=lambda: datetime.now(tz=timezone.utc))

    def to_document(self) -> dict[str, Any]:
        """Serialise for the store and API in camelCase."""
        return {
            "trackId": self.track_id,
            "name": self.name,
            "artist": self.artist,
            "popularity": self.popularity,
            "isRecentRelease": self.is_recent_release,
            "albumInfo": self.album.model_dump() if self.album else None,
            "audioSource": self.audio_source.value,
            "audioReference": self.audio_reference,
            "provider": self.provider,
            "resolutionConfidence": self.resolution_confidence,
            "features": self.features.model_dump(),
            "analysisRound": self.analysis_round,
            "analyzedAt": self.analyzed_at.isoformat(),
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> TrackProfile:
        album = doc.get("albumInfo")
        return cls(
            track_id=doc["trackId"],
            name=doc.get("name", ""),
            artist=doc.get("artist", ""),
            popularity=doc.get("popularity", 0) or 0,
            is_recent_release=bool(doc.get("isRecentRelease", False)),
            album=AlbumInfo(**album) if album else None,
            audio_source=SourceTag(doc.get("audioSource", SourceTag.NONE.value)),
            audio_reference=doc.get("audioReference", ""),
            provider=doc.get("provider"),
            resolution_confidence=doc.get("resolutionConfidence", 0.0) or 0.0,
            features=FeatureVector(**(doc.get("features") or {})),
            analysis_round=doc.get("analysisRound", 1),
            analyzed_at=datetime.fromisoformat(doc["analyzedAt"])
            if doc.get("analyzedAt")
            else datetime.now(tz=timezone.utc),
        )
