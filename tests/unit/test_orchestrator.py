"""Unit tests for the staged two-round orchestrator."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.models.analysis import ArtistAnalysisRequest
from src.models.diagnostics import RoundCounters
from src.models.resolution import ResolutionOutcome, ResolutionStrategy, SourceTag
from src.pipeline.orchestrator import StagedAnalysisOrchestrator
from src.services.feature_service import FeatureLookup
from src.services.track_catalog import TrackCatalogService
from src.utils.errors import ExtractionError
from tests.factories import (
    make_track,
    make_track_source,
    make_vector,
    zero_delay_resolution,
    zero_delay_stage,
)


def _tracks(prefix: str, count: int, *, recent: bool = False) -> list:
    return [make_track(f"{prefix}{i}", name=f"Song {prefix}{i}", recent=recent) for i in range(count)]


def _engine(resolvable: set[str] | None = None) -> MagicMock:
    """Engine mock resolving every track, or only the ids in *resolvable*."""

    async def resolve(track, strategy, diagnostics, **kwargs):
        if resolvable is not None and track.track_id not in resolvable:
            return ResolutionOutcome()
        return ResolutionOutcome(
            audio_reference=f"https://sc/{track.track_id}",
            source_tag=SourceTag.COMMUNITY_HOSTED,
            confidence=0.8,
            provider="soundcloud",
        )

    engine = MagicMock()
    engine.config = zero_delay_resolution()
    engine.resolve = AsyncMock(side_effect=resolve)
    return engine


def _features(error: Exception | None = None) -> MagicMock:
    features = MagicMock()
    lookup = FeatureLookup(vector=make_vector(), fingerprint="fp", cached=False)
    features.analyze = AsyncMock(return_value=lookup, side_effect=error)
    return features


def _clock(*ticks: float):
    values = iter(ticks)
    last = [0.0]

    def now() -> float:
        last[0] = next(values, last[0])
        return last[0]

    return now


def _orchestrator(source, engine, features=None, clock=None, **stage) -> StagedAnalysisOrchestrator:
    config = zero_delay_stage(**stage)
    return StagedAnalysisOrchestrator(
        TrackCatalogService(source, None, config=config),
        engine,
        features or _features(),
        config=config,
        clock=clock or _clock(0.0),
    )


# ======================================================================
# Round selection and the gate
# ======================================================================


class TestRounds:
    @pytest.mark.asyncio
    async def test_round2_runs_after_successful_round1(self) -> None:
        top, recent = _tracks("t", 15), _tracks("r", 10, recent=True)
        # 7 of the 12 round-1 tracks resolve; everything in round 2 resolves.
        resolvable = {f"t{i}" for i in range(15)}
        orchestrator = _orchestrator(
            make_track_source(top, recent), _engine(resolvable), round1_top=7, round1_recent=5
        )

        result = await orchestrator.run(ArtistAnalysisRequest(artist_name="Bicep", max_tracks=20))

        assert result.round2_executed is True
        assert result.round1_success_rate == pytest.approx(7 / 12)
        assert result.diagnostics["rounds"]["round1"]["attempted"] == 12
        # Round 2 fills the remaining 8 slots: top[7:12] then recent[5:8].
        assert result.diagnostics["rounds"]["round2"]["attempted"] == 8
        round2_ids = [p.track_id for p in result.profiles if p.analysis_round == 2]
        assert round2_ids == ["t7", "t8", "t9", "t10", "t11"]
        assert len(result.profiles) == 12
        assert result.attempted == 20

    @pytest.mark.asyncio
    async def test_low_round1_success_skips_round2(self) -> None:
        top, recent = _tracks("t", 15), _tracks("r", 10, recent=True)
        resolvable = {"t0", "t1", "t2", "t3"}
        orchestrator = _orchestrator(
            make_track_source(top, recent), _engine(resolvable), round1_top=7, round1_recent=5
        )

        result = await orchestrator.run(ArtistAnalysisRequest(artist_name="Bicep", max_tracks=20))

        assert result.round1_success_rate == pytest.approx(4 / 12)
        assert result.round2_executed is False
        assert len(result.profiles) == 4

    @pytest.mark.asyncio
    async def test_time_guard_skips_round2(self) -> None:
        top = _tracks("t", 15)
        orchestrator = _orchestrator(make_track_source(top), _engine(), clock=_clock(0.0, 25.0, 26.0))

        result = await orchestrator.run(ArtistAnalysisRequest(artist_name="Bicep", max_tracks=20))

        assert result.round2_executed is False
        assert result.elapsed_seconds == pytest.approx(26.0)

    @pytest.mark.asyncio
    async def test_fast_mode_uses_top_tracks_only(self) -> None:
        top, recent = _tracks("t", 15), _tracks("r", 10, recent=True)
        engine = _engine()
        orchestrator = _orchestrator(make_track_source(top, recent), engine)

        result = await orchestrator.run(
            ArtistAnalysisRequest(artist_name="Bicep", max_tracks=20, fast_mode=True)
        )

        assert [p.track_id for p in result.profiles] == ["t0", "t1", "t2", "t3", "t4"]
        assert result.round2_executed is False
        assert engine.resolve.await_args.kwargs["fast_mode"] is True

    @pytest.mark.asyncio
    async def test_round1_capped_at_max_tracks(self) -> None:
        orchestrator = _orchestrator(make_track_source(_tracks("t", 15), _tracks("r", 10, recent=True)), _engine())

        result = await orchestrator.run(ArtistAnalysisRequest(artist_name="Bicep", max_tracks=3))

        assert [p.track_id for p in result.profiles] == ["t0", "t1", "t2"]
        assert result.round2_executed is False


class TestShouldRunRound2:
    def _counters(self, attempted: int, succeeded: int) -> RoundCounters:
        return RoundCounters(attempted=attempted, succeeded=succeeded)

    def test_all_conditions_met(self) -> None:
        orchestrator = _orchestrator(make_track_source(), _engine())
        request = ArtistAnalysisRequest(artist_name="Bicep", max_tracks=20)
        assert orchestrator.should_run_round2(request, self._counters(10, 4), elapsed=5.0) is True

    @pytest.mark.parametrize(
        ("fast_mode", "max_tracks", "succeeded", "elapsed"),
        [
            (True, 20, 10, 1.0),
            (False, 10, 10, 1.0),
            (False, 20, 3, 1.0),
            (False, 20, 10, 22.0),
        ],
    )
    def test_any_failed_condition_blocks(self, fast_mode, max_tracks, succeeded, elapsed) -> None:
        orchestrator = _orchestrator(make_track_source(), _engine())
        request = ArtistAnalysisRequest(artist_name="Bicep", max_tracks=max_tracks, fast_mode=fast_mode)
        assert orchestrator.should_run_round2(request, self._counters(10, succeeded), elapsed) is False


# ======================================================================
# Failures and result assembly
# ======================================================================


class TestFailures:
    @pytest.mark.asyncio
    async def test_no_tracks(self) -> None:
        orchestrator = _orchestrator(make_track_source(), _engine())

        result = await orchestrator.run(ArtistAnalysisRequest(artist_name="Nobody"))

        assert result.profiles == []
        assert result.had_initial_tracks is False
        assert result.failure_reasons == ["no tracks available"]

    @pytest.mark.asyncio
    async def test_no_playable_reference(self) -> None:
        orchestrator = _orchestrator(make_track_source(_tracks("t", 3)), _engine(resolvable=set()))

        result = await orchestrator.run(ArtistAnalysisRequest(artist_name="Bicep", max_tracks=3))

        assert result.had_initial_tracks is True
        assert result.references_found == 0
        assert "no playable audio reference found" in result.failure_reasons

    @pytest.mark.asyncio
    async def test_extraction_failures_skip_tracks(self) -> None:
        orchestrator = _orchestrator(
            make_track_source(_tracks("t", 3)), _engine(), features=_features(error=ExtractionError("bad audio"))
        )

        result = await orchestrator.run(ArtistAnalysisRequest(artist_name="Bicep", max_tracks=3))

        assert result.profiles == []
        assert result.references_found == 3
        assert "feature extraction failed for every reference" in result.failure_reasons

    @pytest.mark.asyncio
    async def test_excluded_tracks_never_resolved(self) -> None:
        engine = _engine()
        orchestrator = _orchestrator(make_track_source(_tracks("t", 3)), engine)

        result = await orchestrator.run(
            ArtistAnalysisRequest(artist_name="Bicep", max_tracks=3, exclude_track_ids=frozenset({"t0"}))
        )

        resolved_ids = [call.args[0].track_id for call in engine.resolve.await_args_list]
        assert resolved_ids == ["t1", "t2"]
        assert [p.track_id for p in result.profiles] == ["t1", "t2"]

    @pytest.mark.asyncio
    async def test_profile_carries_resolution_details(self) -> None:
        orchestrator = _orchestrator(make_track_source(_tracks("t", 1)), _engine())

        result = await orchestrator.run(
            ArtistAnalysisRequest(
                artist_name="Bicep", max_tracks=1, strategy=ResolutionStrategy.FORCED_DIAGNOSTIC
            )
        )

        profile = result.profiles[0]
        assert profile.audio_source is SourceTag.COMMUNITY_HOSTED
        assert profile.audio_reference == "https://sc/t0"
        assert profile.provider == "soundcloud"
        assert profile.resolution_confidence == pytest.approx(0.8)
        assert profile.analysis_round == 1
        assert result.diagnostics["strategy"] == "forced-diagnostic"
