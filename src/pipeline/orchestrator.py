"""Round-based staged orchestrator for one artist.

Turns an :class:`~src.models.analysis.ArtistAnalysisRequest` into a list of
new :class:`~src.models.track.TrackProfile` objects:

    ACQUIRE ──► ROUND 1 ──► GATE ──► ROUND 2 (optional) ──► RESULT

- **Acquire**: :class:`~src.services.track_catalog.TrackCatalogService`
  lists top tracks and recent releases, dropping tracks the aggregate
  already has.
- **Round 1**: the first ``round1_top`` top tracks and ``round1_recent``
  recent tracks (top only in fast mode), capped at ``max_tracks``.
- **Gate**: round 2 runs only outside fast mode, while the elapsed time is
  under the guard, when round 1 succeeded on at least the configured share
  of its tracks, and when ``max_tracks`` exceeds round 1's capacity.
- **Per track**: resolve, extract, assemble.  A track that fails at any
  point is skipped; the run itself always completes.

The orchestrator never persists anything; the artist service hands its
result to the lifecycle manager.
"""

from __future__ import annotations

import asyncio
import time

import httpx
import structlog

from src.config.tuning import StageConfig
from src.models.analysis import ArtistAnalysisRequest, OrchestrationResult
from src.models.diagnostics import AnalysisDiagnostics, RoundCounters
from src.models.resolution import ResolutionStrategy
from src.models.track import TrackDescriptor, TrackProfile
from src.services.feature_service import FeatureService
from src.services.resolution_engine import ResolutionEngine
from src.services.track_catalog import TrackCatalogService
from src.utils.errors import ExtractionError, SoundMatrixError
from src.utils.logging import get_logger


class StagedAnalysisOrchestrator:
    """Select, resolve and extract an artist's tracks in up to two rounds."""

    def __init__(
        self,
        catalog: TrackCatalogService,
        engine: ResolutionEngine,
        features: FeatureService,
        config: StageConfig | None = None,
        clock=time.monotonic,
    ) -> None:
        self._catalog = catalog
        self._engine = engine
        self._features = features
        self._config = config or StageConfig()
        self._clock = clock
        self._logger: structlog.BoundLogger = get_logger(__name__)

    def new_diagnostics(self, request: ArtistAnalysisRequest) -> AnalysisDiagnostics:
        strategy = request.strategy or self._engine.config.default_strategy
        resolution = self._engine.config
        return AnalysisDiagnostics(
            strategy=strategy.value,
            fast_mode=request.fast_mode,
            attempt_budget=resolution.attempt_budget(request.fast_mode, request.max_resolution_attempts),
            query_sample_size=resolution.community_query_sample_size,
        )

    def should_run_round2(self, request: ArtistAnalysisRequest, round1: RoundCounters, elapsed: float) -> bool:
        cfg = self._config
        return (
            not request.fast_mode
            and elapsed < cfg.round2_time_guard_seconds
            and round1.success_rate >= cfg.min_round1_success_rate
            and request.max_tracks > cfg.round1_capacity
        )

    async def run(
        self,
        request: ArtistAnalysisRequest,
        diagnostics: AnalysisDiagnostics | None = None,
    ) -> OrchestrationResult:
        started = self._clock()
        cfg = self._config
        diagnostics = diagnostics or self.new_diagnostics(request)
        strategy = request.strategy or self._engine.config.default_strategy

        acquired = await self._catalog.acquire(
            request.artist_name,
            diagnostics,
            max_tracks=request.max_tracks,
            catalog_id=request.catalog_id,
            include_recent=request.include_recent_releases,
            exclude_ids=request.exclude_track_ids,
        )
        failure_reasons = list(acquired.failure_reasons)
        had_initial_tracks = diagnostics.initial_tracks > 0

        if acquired.total == 0:
            self._logger.info("no_tracks_to_analyze", artist=request.artist_name)
            return OrchestrationResult(
                had_initial_tracks=had_initial_tracks,
                initial_track_count=diagnostics.initial_tracks,
                failure_reasons=failure_reasons or ["no tracks available"],
                elapsed_seconds=self._clock() - started,
                diagnostics=diagnostics.to_dict(),
            )

        # -- Round 1 --
        top = acquired.top
        recent = acquired.recent if not request.fast_mode else []
        round1 = (top[: cfg.round1_top] + recent[: cfg.round1_recent])[: request.max_tracks]
        profiles = await self._run_round(request, strategy, round1, 1, diagnostics.round1, diagnostics)

        # -- Gate + Round 2 --
        elapsed = self._clock() - started
        if self.should_run_round2(request, diagnostics.round1, elapsed):
            remaining = request.max_tracks - len(round1)
            round2 = (
                top[cfg.round1_top : cfg.round1_top + cfg.round2_top]
                + recent[cfg.round1_recent : cfg.round1_recent + cfg.round2_recent]
            )[:remaining]
            if round2:
                diagnostics.round2.executed = True
                profiles += await self._run_round(request, strategy, round2, 2, diagnostics.round2, diagnostics)
        else:
            self._logger.debug(
                "round2_skipped",
                artist=request.artist_name,
                fast_mode=request.fast_mode,
                elapsed=round(elapsed, 2),
                round1_success_rate=round(diagnostics.round1.success_rate, 3),
            )

        diagnostics.round1.executed = True
        attempted = diagnostics.round1.attempted + diagnostics.round2.attempted
        with_reference = diagnostics.round1.with_reference + diagnostics.round2.with_reference
        if not profiles:
            if with_reference == 0:
                failure_reasons.append("no playable audio reference found")
            else:
                failure_reasons.append("feature extraction failed for every reference")

        elapsed = self._clock() - started
        self._logger.info(
            "artist_orchestration_complete",
            artist=request.artist_name,
            attempted=attempted,
            references=with_reference,
            profiles=len(profiles),
            round2=diagnostics.round2.executed,
            elapsed=round(elapsed, 2),
        )
        return OrchestrationResult(
            profiles=profiles,
            had_initial_tracks=had_initial_tracks,
            initial_track_count=diagnostics.initial_tracks,
            references_found=with_reference,
            round2_executed=diagnostics.round2.executed,
            round1_success_rate=diagnostics.round1.success_rate,
            failure_reasons=failure_reasons,
            elapsed_seconds=elapsed,
            diagnostics=diagnostics.to_dict(),
        )

    async def _run_round(
        self,
        request: ArtistAnalysisRequest,
        strategy: ResolutionStrategy,
        tracks: list[TrackDescriptor],
        round_number: int,
        counters: RoundCounters,
        diagnostics: AnalysisDiagnostics,
    ) -> list[TrackProfile]:
        delay = self._config.fast_track_delay if request.fast_mode else self._config.track_delay
        profiles: list[TrackProfile] = []
        for index, track in enumerate(tracks):
            if index and delay:
                await asyncio.sleep(delay)
            counters.attempted += 1
            profile = await self._process_track(request, strategy, track, round_number, counters, diagnostics)
            if profile is not None:
                counters.succeeded += 1
                profiles.append(profile)
        return profiles

    async def _process_track(
        self,
        request: ArtistAnalysisRequest,
        strategy: ResolutionStrategy,
        track: TrackDescriptor,
        round_number: int,
        counters: RoundCounters,
        diagnostics: AnalysisDiagnostics,
    ) -> TrackProfile | None:
        try:
            outcome = await self._engine.resolve(
                track,
                strategy,
                diagnostics,
                fast_mode=request.fast_mode,
                max_attempts=request.max_resolution_attempts,
            )
        except (SoundMatrixError, httpx.HTTPError) as exc:
            self._logger.warning("track_resolution_failed", track=track.name, error=str(exc))
            return None

        if not outcome.resolved or outcome.audio_reference is None:
            self._logger.debug("track_unresolved", track=track.name, attempts=outcome.attempts)
            return None
        counters.with_reference += 1

        try:
            lookup = await self._features.analyze(outcome.audio_reference, track.track_id, diagnostics)
        except ExtractionError as exc:
            self._logger.warning(
                "track_extraction_failed",
                track=track.name,
                provider=outcome.provider,
                error=str(exc),
            )
            return None

        return TrackProfile(
            track_id=track.track_id,
            name=track.name,
            artist=track.primary_artist or request.artist_name,
            popularity=track.popularity,
            is_recent_release=track.is_recent_release,
            album=track.album,
            audio_source=outcome.source_tag,
            audio_reference=outcome.audio_reference,
            provider=outcome.provider,
            resolution_confidence=outcome.confidence,
            features=lookup.vector,
            analysis_round=round_number,
        )
