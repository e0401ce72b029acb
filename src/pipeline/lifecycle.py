"""Profile lifecycle manager: merge new track profiles and persist safely.

:meth:`ProfileLifecycleManager.merge` is pure.  It folds new track
profiles into an aggregate, recomputes the derived fields and decides the
lifecycle state through :func:`~src.models.profile.derive_state`.

:meth:`ProfileLifecycleManager.commit` persists a merge in two writes:

1. the content (track matrix, derived fields, target), confirmed by the
   version number the store returns;
2. the lifecycle flag, conditional on that version.

If the content write cannot be confirmed the flag is never advanced, so a
``built`` flag never points at content that was not stored.

Downgrades: a merge never moves a ``built`` aggregate back below
``built`` unless the caller passes ``allow_downgrade=True``.  An append
that would do so (a raised target) keeps the previous target; a replace
that would do so is refused.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

import structlog

from src.interfaces.profile_store import IProfileStore
from src.models.profile import ArtistProfile, LifecycleState, derive_state
from src.models.track import TrackProfile
from src.services.profile_derivation import average_features, derive_genre_mapping, recent_evolution
from src.utils.errors import PersistenceError
from src.utils.logging import get_logger


class MergeMode(str, Enum):  # noqa: UP042
    APPEND = "append"
    REPLACE = "replace"


@dataclass(frozen=True)
class MergeResult:
    aggregate: ArtistProfile
    state: LifecycleState
    added: int = 0
    changed: bool = False
    downgrade_blocked: bool = False


@dataclass(frozen=True)
class CommitResult:
    aggregate: ArtistProfile
    state: LifecycleState
    previous_state: LifecycleState
    added: int = 0
    persisted: bool = False
    write_attempted: bool = False
    version: int | None = None


def _dedupe(profiles: Sequence[TrackProfile], seen: set[str] | None = None) -> list[TrackProfile]:
    seen = set() if seen is None else set(seen)
    unique: list[TrackProfile] = []
    for profile in profiles:
        if profile.track_id in seen:
            continue
        seen.add(profile.track_id)
        unique.append(profile)
    return unique


class ProfileLifecycleManager:
    """Owns every transition of an aggregate's lifecycle state."""

    def __init__(self, store: IProfileStore | None = None) -> None:
        self._store = store
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @staticmethod
    def remaining(existing: ArtistProfile | None, target: int) -> int:
        current = len(existing.track_matrix) if existing else 0
        return max(0, target - current)

    def merge(
        self,
        existing: ArtistProfile,
        new_profiles: Sequence[TrackProfile],
        target: int,
        *,
        mode: MergeMode = MergeMode.APPEND,
        allow_downgrade: bool = False,
        known_genres: Sequence[str] = (),
        artist_name: str = "",
    ) -> MergeResult:
        """Fold *new_profiles* into *existing*.

        Existing entries win on a duplicate ``track_id``; track profiles are
        immutable so the first stored copy is kept.  Empty input returns the
        aggregate unchanged.
        """
        if not new_profiles:
            return MergeResult(aggregate=existing, state=existing.lifecycle_state)

        was_built = existing.lifecycle_state is LifecycleState.BUILT
        if mode is MergeMode.REPLACE:
            matrix = _dedupe(new_profiles)
            added = len([p for p in matrix if p.track_id not in existing.track_ids])
        else:
            fresh = _dedupe(new_profiles, seen=existing.track_ids)
            matrix = list(existing.track_matrix) + fresh
            added = len(fresh)

        if mode is MergeMode.APPEND and added == 0:
            return MergeResult(aggregate=existing, state=existing.lifecycle_state)

        state = derive_state(len(matrix), target)
        if was_built and state is not LifecycleState.BUILT and not allow_downgrade:
            if mode is MergeMode.REPLACE:
                self._logger.info(
                    "lifecycle_downgrade_blocked",
                    entity_id=existing.entity_id,
                    tracks=len(matrix),
                    target=target,
                )
                return MergeResult(
                    aggregate=existing, state=existing.lifecycle_state, downgrade_blocked=True
                )
            target = existing.target_track_count
            state = derive_state(len(matrix), target)

        now = datetime.now(tz=timezone.utc)
        aggregate = existing.model_copy(
            update={
                "track_matrix": matrix,
                "genre_mapping": derive_genre_mapping(list(known_genres), matrix, artist_name),
                "recent_evolution": recent_evolution(matrix),
                "average_features": average_features(matrix),
                "lifecycle_state": state,
                "target_track_count": target,
                "updated_at": now,
                "built_at": (existing.built_at or now) if state is LifecycleState.BUILT else None,
            }
        )
        return MergeResult(aggregate=aggregate, state=state, added=added, changed=True)

    async def commit(
        self,
        existing: ArtistProfile,
        new_profiles: Sequence[TrackProfile],
        target: int,
        *,
        mode: MergeMode = MergeMode.APPEND,
        allow_downgrade: bool = False,
        known_genres: Sequence[str] = (),
        artist_name: str = "",
    ) -> CommitResult:
        """Merge and persist, content first and lifecycle flag second."""
        if self._store is None:
            raise PersistenceError(message="No profile store configured")

        previous = existing.lifecycle_state
        merged = self.merge(
            existing,
            new_profiles,
            target,
            mode=mode,
            allow_downgrade=allow_downgrade,
            known_genres=known_genres,
            artist_name=artist_name,
        )

        if not merged.changed:
            return await self._reconcile_flag(existing, target, allow_downgrade)

        aggregate = merged.aggregate
        entity_id = aggregate.entity_id
        try:
            version = await self._store.write_profile_content(aggregate)
        except PersistenceError as exc:
            self._logger.error("profile_content_write_failed", entity_id=entity_id, error=str(exc))
            version = None

        if version is None:
            # Keep the merged tracks in the response; only the flag stays put.
            return CommitResult(
                aggregate=aggregate.model_copy(
                    update={"lifecycle_state": previous, "built_at": existing.built_at}
                ),
                state=previous,
                previous_state=previous,
                added=merged.added,
                write_attempted=True,
            )

        try:
            flag_written = await self._store.write_lifecycle_state(
                entity_id, merged.state, aggregate.built_at, expected_version=version
            )
        except PersistenceError as exc:
            self._logger.error("lifecycle_flag_write_failed", entity_id=entity_id, error=str(exc))
            return CommitResult(
                aggregate=aggregate.model_copy(
                    update={"version": version, "lifecycle_state": previous, "built_at": existing.built_at}
                ),
                state=previous,
                previous_state=previous,
                added=merged.added,
                write_attempted=True,
                version=version,
            )
        if not flag_written:
            self._logger.warning(
                "lifecycle_flag_not_written",
                entity_id=entity_id,
                state=merged.state.value,
                version=version,
            )
            state = previous
        else:
            state = merged.state

        self._logger.info(
            "profile_committed",
            entity_id=entity_id,
            tracks=len(aggregate.track_matrix),
            target=aggregate.target_track_count,
            added=merged.added,
            previous_state=previous.value,
            state=state.value,
            version=version,
        )
        return CommitResult(
            aggregate=aggregate.model_copy(update={"version": version, "lifecycle_state": state}),
            state=state,
            previous_state=previous,
            added=merged.added,
            persisted=True,
            write_attempted=True,
            version=version,
        )

    async def _reconcile_flag(
        self, existing: ArtistProfile, target: int, allow_downgrade: bool
    ) -> CommitResult:
        """Write only the flag when the content is already complete.

        Covers aggregates whose matrix already meets the target but whose
        flag was never advanced (or was cleared by a repair).
        """
        previous = existing.lifecycle_state
        if not existing.track_matrix:
            return CommitResult(aggregate=existing, state=previous, previous_state=previous, persisted=True)

        state = derive_state(len(existing.track_matrix), target)
        if state is previous or (previous is LifecycleState.BUILT and not allow_downgrade):
            return CommitResult(aggregate=existing, state=previous, previous_state=previous, persisted=True)

        built_at = (existing.built_at or datetime.now(tz=timezone.utc)) if state is LifecycleState.BUILT else None
        if state is LifecycleState.BUILT and target != existing.target_track_count:
            # The flag must agree with the stored target.
            existing = existing.model_copy(update={"target_track_count": target})
            try:
                version = await self._store.write_profile_content(existing)
            except PersistenceError as exc:
                self._logger.error("profile_content_write_failed", entity_id=existing.entity_id, error=str(exc))
                version = None
            if version is None:
                return CommitResult(
                    aggregate=existing, state=previous, previous_state=previous, write_attempted=True
                )
        else:
            version = existing.version or None

        try:
            ok = await self._store.write_lifecycle_state(
                existing.entity_id, state, built_at, expected_version=version
            )
        except PersistenceError as exc:
            self._logger.error("lifecycle_flag_write_failed", entity_id=existing.entity_id, error=str(exc))
            ok = False
        final = state if ok else previous
        self._logger.info(
            "lifecycle_flag_reconciled",
            entity_id=existing.entity_id,
            previous_state=previous.value,
            state=final.value,
        )
        return CommitResult(
            aggregate=existing.model_copy(
                update={"lifecycle_state": final, "built_at": built_at if ok else existing.built_at}
            ),
            state=final,
            previous_state=previous,
            persisted=ok,
            write_attempted=True,
            version=version,
        )
