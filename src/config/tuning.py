"""Frozen tuning models built from the ``config.yaml`` sections.

main.py reads the merged config dict once and hands each component the
slice it needs as one of these models, so components never reach back
into raw dicts.  Every field has a default, so a missing YAML file still
yields a working pipeline.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.models.resolution import ResolutionStrategy


class StageConfig(BaseModel):
    """Round sizes, gate thresholds and pacing for the staged orchestrator."""

    model_config = ConfigDict(frozen=True)

    round1_top: int = Field(default=5, ge=0)
    round1_recent: int = Field(default=5, ge=0)
    round2_top: int = Field(default=5, ge=0)
    round2_recent: int = Field(default=5, ge=0)
    min_round1_success_rate: float = Field(default=0.4, ge=0.0, le=1.0)
    # Headroom under the external 30 s request timeout.
    round2_time_guard_seconds: float = Field(default=22.0, gt=0.0)
    track_delay: float = Field(default=0.5, ge=0.0)
    fast_track_delay: float = Field(default=0.15, ge=0.0)
    recent_release_years: int = Field(default=2, ge=0)
    max_recent_albums: int = Field(default=10, ge=0)

    @property
    def round1_capacity(self) -> int:
        return self.round1_top + self.round1_recent


class ResolutionConfig(BaseModel):
    """Attempt budgets, markets and query pacing for the resolution engine."""

    model_config = ConfigDict(frozen=True)

    default_strategy: ResolutionStrategy = ResolutionStrategy.BALANCED
    max_attempts: int = Field(default=120, ge=1)
    fast_max_attempts: int = Field(default=20, ge=1)
    markets: list[str] = Field(default_factory=lambda: ["US", "GB", "DE", "SE", "CA"])
    query_delay: float = Field(default=0.12, ge=0.0)
    fast_query_delay: float = Field(default=0.05, ge=0.0)
    relaxed_query_delay: float = Field(default=0.10, ge=0.0)
    fast_relaxed_query_delay: float = Field(default=0.04, ge=0.0)
    community_query_sample_size: int = Field(default=12, ge=0)
    # Per-strategy overrides of the candidate scoring rule weights,
    # e.g. {"forced-diagnostic": {"verified_uploader": 0.0}}.
    scoring_overrides: dict[str, dict[str, float]] = Field(default_factory=dict)

    def attempt_budget(self, fast_mode: bool, override: int | None = None) -> int:
        if override is not None and override > 0:
            return override
        return self.fast_max_attempts if fast_mode else self.max_attempts


class LifecycleConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    default_target_tracks: int = Field(default=10, ge=1)
    # Whether a forced-diagnostic run may move a built aggregate back to staged.
    allow_diagnostic_downgrade: bool = False


class BatchConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    concurrency: int = Field(default=5, ge=1)
    limit: int = Field(default=50, ge=1)
    fast_mode: bool = True


def build_tuning(config: dict[str, Any]) -> dict[str, BaseModel]:
    """Convert the merged config dict into the frozen tuning models."""
    return {
        "stage": StageConfig(**config.get("pipeline", {})),
        "resolution": ResolutionConfig(**config.get("resolution", {})),
        "lifecycle": LifecycleConfig(**config.get("lifecycle", {})),
        "batch": BatchConfig(**config.get("batch", {})),
    }
