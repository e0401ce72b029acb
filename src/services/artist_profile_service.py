"""Artist analysis service: orchestrate, merge, persist, respond.

This is the seam the HTTP route and the batch driver share.  For one
request it:

1. loads the existing aggregate when an ``entity_id`` is given, so only
   ``target - len(track_matrix)`` new tracks are requested;
2. runs the staged orchestrator;
3. merges (and, with ``persist``, commits) through the lifecycle manager;
4. shapes an :class:`~src.models.analysis.ArtistAnalysisResult`, falling
   back to a genre-only partial result when no audio could be analysed.

It never raises for domain failures; every outcome is a structured result.
"""

from __future__ import annotations

import httpx

from src.config.tuning import LifecycleConfig
from src.interfaces.profile_store import IProfileStore
from src.models.analysis import ArtistAnalysisRequest, ArtistAnalysisResult, FailSubtype, OrchestrationResult
from src.models.profile import ArtistProfile, GenreSource, LifecycleState
from src.models.resolution import ResolutionStrategy
from src.pipeline.lifecycle import CommitResult, MergeMode, ProfileLifecycleManager
from src.pipeline.orchestrator import StagedAnalysisOrchestrator
from src.services.profile_derivation import derive_genre_mapping, infer_features_from_genres
from src.utils.errors import SoundMatrixError
from src.utils.logging import get_logger
from src.utils.text_normalizer import normalize_for_match

logger = get_logger(__name__)


def entity_id_for(artist_name: str) -> str:
    """Stable id for artists submitted without one."""
    return normalize_for_match(artist_name).replace(" ", "-") or artist_name.strip().lower()


class ArtistProfileService:
    def __init__(
        self,
        orchestrator: StagedAnalysisOrchestrator,
        lifecycle: ProfileLifecycleManager,
        store: IProfileStore | None = None,
        config: LifecycleConfig | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._lifecycle = lifecycle
        self._store = store
        self._config = config or LifecycleConfig()

    async def analyze(
        self,
        request: ArtistAnalysisRequest,
        *,
        mode: MergeMode = MergeMode.APPEND,
    ) -> ArtistAnalysisResult:
        try:
            return await self._analyze(request, mode)
        except (SoundMatrixError, httpx.HTTPError) as exc:
            logger.error("artist_analysis_failed", artist=request.artist_name, error=str(exc))
            return ArtistAnalysisResult(
                success=False,
                error=str(exc),
                artist_name=request.artist_name,
                entity_id=request.entity_id,
            )

    async def _analyze(self, request: ArtistAnalysisRequest, mode: MergeMode) -> ArtistAnalysisResult:
        entity_id = request.entity_id or entity_id_for(request.artist_name)
        target = request.max_tracks
        known_genres = list(request.existing_genres)
        existing = ArtistProfile(entity_id=entity_id, target_track_count=target)

        persist = request.persist and request.entity_id is not None and self._store is not None

        if request.entity_id and self._store is not None:
            entity = await self._store.get_artist(entity_id)
            if entity is not None:
                known_genres = known_genres or list(entity.genres)
                if request.catalog_id is None and entity.catalog_id:
                    request = request.model_copy(update={"catalog_id": entity.catalog_id})
                if entity.profile is not None:
                    existing = entity.profile
            elif persist:
                await self._store.upsert_artist(
                    entity_id, request.artist_name, request.catalog_id, known_genres
                )

        if mode is MergeMode.REPLACE:
            requested = target
            exclude: frozenset[str] = frozenset()
        else:
            requested = self._lifecycle.remaining(existing, target)
            exclude = frozenset(existing.track_ids)

        if requested == 0:
            orchestration = OrchestrationResult(
                had_initial_tracks=True,
                initial_track_count=len(existing.track_matrix),
                failure_reasons=["profile already complete"],
            )
        else:
            orchestration = await self._orchestrator.run(
                request.model_copy(update={"max_tracks": requested, "exclude_track_ids": exclude})
            )

        strategy = request.strategy or ResolutionStrategy.BALANCED
        allow_downgrade = (
            strategy is ResolutionStrategy.FORCED_DIAGNOSTIC and self._config.allow_diagnostic_downgrade
        )
        commit: CommitResult | None = None
        if persist:
            commit = await self._lifecycle.commit(
                existing,
                orchestration.profiles,
                target,
                mode=mode,
                allow_downgrade=allow_downgrade,
                known_genres=known_genres,
                artist_name=request.artist_name,
            )
            aggregate, state = commit.aggregate, commit.state
        else:
            merged = self._lifecycle.merge(
                existing,
                orchestration.profiles,
                target,
                mode=mode,
                allow_downgrade=allow_downgrade,
                known_genres=known_genres,
                artist_name=request.artist_name,
            )
            aggregate, state = merged.aggregate, merged.state

        return self._build_result(
            request, entity_id, existing, aggregate, state, orchestration, commit, requested, known_genres
        )

    def _build_result(
        self,
        request: ArtistAnalysisRequest,
        entity_id: str,
        existing: ArtistProfile,
        aggregate: ArtistProfile,
        state: LifecycleState,
        orchestration: OrchestrationResult,
        commit: CommitResult | None,
        requested: int,
        known_genres: list[str],
    ) -> ArtistAnalysisResult:
        metadata = {
            "targetTrackCount": aggregate.target_track_count,
            "requestedTracks": requested,
            "newTracks": len(orchestration.profiles) if commit is None else commit.added,
            "previousLifecycleState": existing.lifecycle_state.value,
            "hadInitialTracks": orchestration.had_initial_tracks,
            "initialTrackCount": orchestration.initial_track_count,
            "referencesFound": orchestration.references_found,
            "round2Executed": orchestration.round2_executed,
            "round1SuccessRate": round(orchestration.round1_success_rate, 3),
            "elapsedSeconds": round(orchestration.elapsed_seconds, 3),
            "failureReasons": list(orchestration.failure_reasons),
            "writeAttempted": bool(commit and commit.write_attempted),
        }
        persisted = bool(commit and commit.persisted)

        if aggregate.track_matrix:
            return ArtistAnalysisResult(
                success=True,
                artist_name=request.artist_name,
                entity_id=entity_id,
                track_matrix=list(aggregate.track_matrix),
                genre_mapping=aggregate.genre_mapping,
                recent_evolution=aggregate.recent_evolution,
                average_features=dict(aggregate.average_features),
                lifecycle_state=state,
                persisted=persisted,
                total_track_count=len(aggregate.track_matrix),
                metadata=metadata,
                diagnostics=orchestration.diagnostics,
            )

        # Nothing analysable: try a genre-only partial result.
        if not orchestration.had_initial_tracks:
            subtype = FailSubtype.NO_TRACKS
        elif orchestration.references_found == 0:
            subtype = FailSubtype.NO_PREVIEW
        else:
            subtype = FailSubtype.EXTRACTION_FAILED

        mapping = derive_genre_mapping(known_genres, [], request.artist_name)
        if mapping.source is not GenreSource.NONE:
            partial_subtype = (
                FailSubtype.NO_TRACKS_GENRE_ONLY
                if subtype is FailSubtype.NO_TRACKS
                else FailSubtype.NO_PREVIEW_GENRE_ONLY
            )
            logger.info(
                "artist_partial_success",
                artist=request.artist_name,
                genre_source=mapping.source.value,
                fail_subtype=partial_subtype.value,
            )
            return ArtistAnalysisResult(
                success=True,
                partial=True,
                fail_subtype=partial_subtype,
                artist_name=request.artist_name,
                entity_id=entity_id,
                genre_mapping=mapping,
                inferred_features=infer_features_from_genres(mapping.genres, request.artist_name),
                lifecycle_state=state,
                persisted=persisted,
                metadata=metadata,
                diagnostics=orchestration.diagnostics,
            )

        reasons = "; ".join(orchestration.failure_reasons) or subtype.value
        logger.info("artist_analysis_empty", artist=request.artist_name, fail_subtype=subtype.value)
        return ArtistAnalysisResult(
            success=False,
            fail_subtype=subtype,
            error=reasons,
            artist_name=request.artist_name,
            entity_id=entity_id,
            lifecycle_state=state,
            persisted=persisted,
            metadata=metadata,
            diagnostics=orchestration.diagnostics,
        )
