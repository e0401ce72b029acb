"""Batch coverage driver: build profiles for every artist still missing one.

Selects ``absent`` / ``staged`` artists from the store (all artists with
``force``), and runs them through the artist profile service with bounded
concurrency.  For each artist:

- an aggregate that already meets its target but is not flagged ``built``
  is flagged and skipped;
- otherwise a ``primary-first`` pass requests the remaining tracks, and a
  ``forced-diagnostic`` pass runs only when the first one added nothing.

``dry_run`` runs the analysis without persisting anything.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from src.config.tuning import BatchConfig, LifecycleConfig
from src.interfaces.profile_store import IProfileStore
from src.models.analysis import ArtistAnalysisRequest, ArtistAnalysisResult
from src.models.profile import ArtistEntity, ArtistProfile, LifecycleState
from src.models.resolution import ResolutionStrategy
from src.pipeline.lifecycle import MergeMode, ProfileLifecycleManager
from src.utils.concurrency import throttled_gather
from src.utils.logging import get_logger

if TYPE_CHECKING:
    from src.services.artist_profile_service import ArtistProfileService

logger = get_logger(__name__)

_PASSES: tuple[ResolutionStrategy, ...] = (
    ResolutionStrategy.PRIMARY_FIRST,
    ResolutionStrategy.FORCED_DIAGNOSTIC,
)


@dataclass(frozen=True)
class BatchOptions:
    limit: int = 50
    force: bool = False
    dry_run: bool = False
    # Target track count; ``None`` keeps each aggregate's own target.
    max_tracks: int | None = None
    fast_mode: bool = True
    concurrency: int = 5


@dataclass
class BatchReport:
    selected: int = 0
    processed: int = 0
    improved: int = 0
    skipped: int = 0
    errors: int = 0
    writes_succeeded: int = 0
    writes_failed: int = 0
    staged_created: int = 0
    built_created: int = 0
    dry_run: bool = False
    results: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "selected": self.selected,
            "processed": self.processed,
            "improved": self.improved,
            "skipped": self.skipped,
            "errors": self.errors,
            "writesSucceeded": self.writes_succeeded,
            "writesFailed": self.writes_failed,
            "stagedCreated": self.staged_created,
            "builtCreated": self.built_created,
            "dryRun": self.dry_run,
            "results": list(self.results),
        }


class BatchCoverageDriver:
    def __init__(
        self,
        store: IProfileStore,
        service: ArtistProfileService,
        lifecycle: ProfileLifecycleManager,
        batch_config: BatchConfig | None = None,
        lifecycle_config: LifecycleConfig | None = None,
    ) -> None:
        self._store = store
        self._service = service
        self._lifecycle = lifecycle
        self._batch = batch_config or BatchConfig()
        self._lifecycle_config = lifecycle_config or LifecycleConfig()

    def default_options(self, **overrides: Any) -> BatchOptions:
        base = {
            "limit": self._batch.limit,
            "fast_mode": self._batch.fast_mode,
            "concurrency": self._batch.concurrency,
        }
        return BatchOptions(**{**base, **overrides})

    async def run(self, options: BatchOptions | None = None) -> BatchReport:
        options = options or self.default_options()
        report = BatchReport(dry_run=options.dry_run)
        entities = await self._store.list_artists_needing_work(options.limit, include_built=options.force)
        report.selected = len(entities)
        logger.info(
            "batch_started",
            selected=len(entities),
            force=options.force,
            dry_run=options.dry_run,
            fast_mode=options.fast_mode,
        )

        semaphore = asyncio.Semaphore(options.concurrency)
        outcomes = await throttled_gather(
            [self._process(entity, options, report) for entity in entities],
            semaphore=semaphore,
        )
        for entity, outcome in zip(entities, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                report.errors += 1
                report.results.append({"entityId": entity.entity_id, "status": "error", "error": str(outcome)})
                logger.error("batch_artist_failed", entity_id=entity.entity_id, error=str(outcome))

        logger.info("batch_complete", **{k: v for k, v in report.to_dict().items() if k != "results"})
        return report

    def _target_for(self, entity: ArtistEntity, options: BatchOptions) -> int:
        if options.max_tracks:
            return options.max_tracks
        if entity.profile is not None:
            return entity.profile.target_track_count
        return self._lifecycle_config.default_target_tracks

    async def _process(self, entity: ArtistEntity, options: BatchOptions, report: BatchReport) -> None:
        profile = entity.profile or ArtistProfile(entity_id=entity.entity_id)
        target = self._target_for(entity, options)
        count = len(profile.track_matrix)

        if entity.lifecycle_state is LifecycleState.BUILT and not options.force:
            report.skipped += 1
            report.results.append({"entityId": entity.entity_id, "status": "skipped_built"})
            return

        if count >= target and entity.lifecycle_state is not LifecycleState.BUILT:
            report.skipped += 1
            if not options.dry_run:
                commit = await self._lifecycle.commit(profile, [], target)
                if commit.state is LifecycleState.BUILT:
                    report.built_created += 1
                    report.writes_succeeded += 1
                elif commit.write_attempted:
                    report.writes_failed += 1
            report.results.append({"entityId": entity.entity_id, "status": "marked_built", "tracks": count})
            return

        mode = MergeMode.REPLACE if options.force else MergeMode.APPEND
        result: ArtistAnalysisResult | None = None
        for strategy in _PASSES:
            request = ArtistAnalysisRequest(
                artist_name=entity.name,
                entity_id=entity.entity_id,
                catalog_id=entity.catalog_id,
                max_tracks=target,
                existing_genres=list(entity.genres),
                strategy=strategy,
                fast_mode=options.fast_mode,
                persist=not options.dry_run,
            )
            result = await self._service.analyze(request, mode=mode)
            if result.metadata.get("newTracks", 0) > 0:
                break
            logger.debug("batch_pass_empty", entity_id=entity.entity_id, strategy=strategy.value)

        report.processed += 1
        self._tally(entity, result, report)

    @staticmethod
    def _tally(entity: ArtistEntity, result: ArtistAnalysisResult | None, report: BatchReport) -> None:
        if result is None:
            return
        added = result.metadata.get("newTracks", 0)
        if added > 0:
            report.improved += 1
        if result.metadata.get("writeAttempted"):
            if result.persisted:
                report.writes_succeeded += 1
            else:
                report.writes_failed += 1

        previous = result.metadata.get("previousLifecycleState")
        state = result.lifecycle_state
        if result.persisted and state is not None and state.value != previous:
            if state is LifecycleState.STAGED:
                report.staged_created += 1
            elif state is LifecycleState.BUILT:
                report.built_created += 1

        report.results.append(
            {
                "entityId": entity.entity_id,
                "status": "improved" if added else "unchanged",
                "newTracks": added,
                "totalTracks": result.total_track_count,
                "lifecycleState": state.value if state else None,
                "failSubtype": result.fail_subtype.value if result.fail_subtype else None,
            }
        )
