"""Unit tests for ArtistProfileService (mocked orchestrator and store)."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.models.analysis import ArtistAnalysisRequest, FailSubtype, OrchestrationResult
from src.models.profile import ArtistEntity, ArtistProfile, GenreSource, LifecycleState
from src.pipeline.lifecycle import MergeMode, ProfileLifecycleManager
from src.services.artist_profile_service import ArtistProfileService, entity_id_for
from src.utils.errors import PersistenceError
from tests.factories import make_profile


def _orchestrator(result: OrchestrationResult) -> MagicMock:
    orchestrator = MagicMock()
    orchestrator.run = AsyncMock(return_value=result)
    return orchestrator


def _store(entity: ArtistEntity | None = None) -> MagicMock:
    store = MagicMock()
    store.get_artist = AsyncMock(return_value=entity)
    store.upsert_artist = AsyncMock()
    store.write_profile_content = AsyncMock(return_value=1)
    store.write_lifecycle_state = AsyncMock(return_value=True)
    return store


def _service(orchestration: OrchestrationResult, store=None) -> ArtistProfileService:
    return ArtistProfileService(
        _orchestrator(orchestration), ProfileLifecycleManager(store=store), store=store
    )


def _found(*ids: str) -> OrchestrationResult:
    return OrchestrationResult(
        profiles=[make_profile(i) for i in ids],
        had_initial_tracks=True,
        initial_track_count=len(ids),
        references_found=len(ids),
    )


class TestEntityId:
    def test_slug(self) -> None:
        assert entity_id_for("Four Tet!") == "four-tet"

    def test_punctuation_only_name(self) -> None:
        assert entity_id_for(" !!! ") == "!!!"


class TestAnalyze:
    @pytest.mark.asyncio
    async def test_ephemeral_analysis_without_entity(self) -> None:
        store = _store()
        service = _service(_found("a", "b", "c"), store=store)

        result = await service.analyze(ArtistAnalysisRequest(artist_name="Bicep", max_tracks=10))

        assert result.success is True
        assert result.entity_id == "bicep"
        assert result.total_track_count == 3
        assert result.lifecycle_state is LifecycleState.STAGED
        assert result.persisted is False
        assert result.metadata["newTracks"] == 3
        store.get_artist.assert_not_awaited()
        store.write_profile_content.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_known_genres_give_partial_result(self) -> None:
        service = _service(OrchestrationResult(failure_reasons=["no tracks available"]))

        result = await service.analyze(
            ArtistAnalysisRequest(artist_name="Obscure Act", existing_genres=["deep house"])
        )

        assert result.success is True
        assert result.partial is True
        assert result.fail_subtype is FailSubtype.NO_TRACKS_GENRE_ONLY
        assert result.genre_mapping.source is GenreSource.KNOWN
        assert result.inferred_features["tempo"] == 128.0
        assert result.track_matrix == []

    @pytest.mark.asyncio
    async def test_name_inference_partial_when_no_preview(self) -> None:
        service = _service(OrchestrationResult(had_initial_tracks=True, references_found=0))

        result = await service.analyze(ArtistAnalysisRequest(artist_name="Metallica"))

        assert result.partial is True
        assert result.fail_subtype is FailSubtype.NO_PREVIEW_GENRE_ONLY
        assert result.genre_mapping.source is GenreSource.NAME_INFERENCE

    @pytest.mark.asyncio
    async def test_structured_failure_without_any_genre_signal(self) -> None:
        service = _service(
            OrchestrationResult(
                had_initial_tracks=True,
                references_found=0,
                failure_reasons=["no playable audio reference found"],
            )
        )

        result = await service.analyze(ArtistAnalysisRequest(artist_name="Unheard Of"))

        assert result.success is False
        assert result.fail_subtype is FailSubtype.NO_PREVIEW
        assert result.error == "no playable audio reference found"

    @pytest.mark.asyncio
    async def test_resumes_from_stored_aggregate(self) -> None:
        existing = ArtistProfile(
            entity_id="e1",
            track_matrix=[make_profile(f"old{i}") for i in range(4)],
            lifecycle_state=LifecycleState.STAGED,
            target_track_count=10,
            version=2,
        )
        entity = ArtistEntity(entity_id="e1", name="Bicep", catalog_id="cat-1", genres=["house"], profile=existing)
        store = _store(entity)
        service = _service(_found(*[f"new{i}" for i in range(6)]), store=store)

        result = await service.analyze(ArtistAnalysisRequest(artist_name="Bicep", entity_id="e1", max_tracks=10))

        sent = service._orchestrator.run.await_args.args[0]
        assert sent.max_tracks == 6
        assert sent.exclude_track_ids == existing.track_ids
        assert sent.catalog_id == "cat-1"
        assert result.persisted is True
        assert result.lifecycle_state is LifecycleState.BUILT
        assert result.total_track_count == 10
        assert result.metadata["previousLifecycleState"] == "staged"
        assert result.genre_mapping.source is GenreSource.KNOWN

    @pytest.mark.asyncio
    async def test_complete_aggregate_skips_orchestration(self) -> None:
        existing = ArtistProfile(
            entity_id="e1",
            track_matrix=[make_profile(f"old{i}") for i in range(10)],
            lifecycle_state=LifecycleState.BUILT,
            target_track_count=10,
        )
        store = _store(ArtistEntity(entity_id="e1", name="Bicep", profile=existing))
        service = _service(_found(), store=store)

        result = await service.analyze(ArtistAnalysisRequest(artist_name="Bicep", entity_id="e1", max_tracks=10))

        service._orchestrator.run.assert_not_awaited()
        assert result.success is True
        assert result.metadata["requestedTracks"] == 0
        assert result.metadata["failureReasons"] == ["profile already complete"]
        store.write_profile_content.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_replace_mode_requests_full_target(self) -> None:
        existing = ArtistProfile(
            entity_id="e1",
            track_matrix=[make_profile("old0")],
            lifecycle_state=LifecycleState.STAGED,
            target_track_count=5,
        )
        store = _store(ArtistEntity(entity_id="e1", name="Bicep", profile=existing))
        service = _service(_found("a", "b"), store=store)

        await service.analyze(
            ArtistAnalysisRequest(artist_name="Bicep", entity_id="e1", max_tracks=5), mode=MergeMode.REPLACE
        )

        sent = service._orchestrator.run.await_args.args[0]
        assert sent.max_tracks == 5
        assert sent.exclude_track_ids == frozenset()

    @pytest.mark.asyncio
    async def test_unknown_entity_is_registered(self) -> None:
        store = _store(None)
        service = _service(_found("a"), store=store)

        await service.analyze(
            ArtistAnalysisRequest(artist_name="Bicep", entity_id="e9", catalog_id="cat-9", existing_genres=["house"])
        )

        store.upsert_artist.assert_awaited_once_with("e9", "Bicep", "cat-9", ["house"])

    @pytest.mark.asyncio
    async def test_dry_run_never_writes(self) -> None:
        store = _store(None)
        service = _service(_found("a"), store=store)

        result = await service.analyze(ArtistAnalysisRequest(artist_name="Bicep", entity_id="e1", persist=False))

        assert result.persisted is False
        store.upsert_artist.assert_not_awaited()
        store.write_profile_content.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_store_errors_become_structured_failures(self) -> None:
        store = _store()
        store.get_artist = AsyncMock(side_effect=PersistenceError("database is locked"))
        service = _service(_found("a"), store=store)

        result = await service.analyze(ArtistAnalysisRequest(artist_name="Bicep", entity_id="e1"))

        assert result.success is False
        assert "database is locked" in result.error
        assert result.entity_id == "e1"

    @pytest.mark.asyncio
    async def test_flag_write_error_still_returns_tracks(self) -> None:
        store = _store(None)
        store.write_lifecycle_state = AsyncMock(side_effect=PersistenceError("flag write failed"))
        service = _service(_found("a", "b"), store=store)

        result = await service.analyze(ArtistAnalysisRequest(artist_name="Bicep", entity_id="e1", max_tracks=10))

        assert result.success is True
        assert result.total_track_count == 2
        assert result.persisted is False
        assert result.lifecycle_state is LifecycleState.ABSENT
        assert result.metadata["writeAttempted"] is True
