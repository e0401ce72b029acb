"""Resolution models: source tags, strategies, and per-track outcomes.

A :class:`ResolutionOutcome` is the resolution engine's decision for one
track.  It is owned by the orchestrator while that track is processed,
folded into a :class:`~src.models.track.TrackProfile` on success, and
discarded otherwise.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class SourceTag(str, Enum):  # noqa: UP042
    """Where a chosen audio reference came from.

    The tag describes the *role* of the answering step, not the vendor:
    a Spotify preview that was already on the track is ``primary-catalog``,
    one found by re-searching Spotify is ``primary-catalog-recovered``.
    """

    PRIMARY_CATALOG = "primary-catalog"
    PRIMARY_CATALOG_RECOVERED = "primary-catalog-recovered"
    ALT_CATALOG_EXACT = "alt-catalog-exact"
    ALT_CATALOG_BROAD = "alt-catalog-broad"
    COMMUNITY_HOSTED = "community-hosted"
    AGGREGATOR_OTHER = "aggregator-other"
    NONE = "none"


class ResolutionStrategy(str, Enum):  # noqa: UP042
    """Ordering and suppression policy over catalog adapters."""

    BALANCED = "balanced"
    PRIMARY_FIRST = "primary-first"
    COMMUNITY_PRIMARY = "community-primary"
    FORCED_DIAGNOSTIC = "forced-diagnostic"

    @classmethod
    def parse(cls, value: str | None) -> ResolutionStrategy:
        """Parse a strategy name, accepting legacy vendor-named aliases.

        ``apple_primary`` and ``soundcloud_primary`` are what older batch
        jobs send; unknown or empty values fall back to ``balanced``.
        """
        if not value:
            return cls.BALANCED
        normalized = value.strip().lower().replace("_", "-")
        aliases = {
            "apple-primary": cls.PRIMARY_FIRST,
            "soundcloud-primary": cls.COMMUNITY_PRIMARY,
            "force-soundcloud-test": cls.FORCED_DIAGNOSTIC,
        }
        if normalized in aliases:
            return aliases[normalized]
        try:
            return cls(normalized)
        except ValueError:
            return cls.BALANCED


class ResolutionOutcome(BaseModel):
    """The engine's decision for one track.

    ``trail`` lists the source tags of every step that was attempted, in
    order, which makes fallback ordering directly assertable in tests.
    """

    model_config = ConfigDict(frozen=True)

    audio_reference: str | None = None
    source_tag: SourceTag = SourceTag.NONE
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    provider: str | None = None
    attempts: int = 0
    attempts_by_provider: dict[str, int] = Field(default_factory=dict)
    suppressed: bool = False
    restored: bool = False
    budget_exhausted: bool = False
    trail: list[SourceTag] = Field(default_factory=list)

    @property
    def resolved(self) -> bool:
        return self.audio_reference is not None and self.source_tag is not SourceTag.NONE
