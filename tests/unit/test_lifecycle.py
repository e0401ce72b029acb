"""Unit tests for ProfileLifecycleManager merge and commit."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.models.profile import ArtistProfile, GenreSource, LifecycleState
from src.pipeline.lifecycle import MergeMode, ProfileLifecycleManager
from src.utils.errors import PersistenceError
from tests.factories import make_profile

BUILT_AT = datetime(2024, 3, 1, tzinfo=timezone.utc)


def _aggregate(
    count: int = 0,
    state: LifecycleState = LifecycleState.ABSENT,
    target: int = 10,
    *,
    prefix: str = "old",
    version: int = 0,
) -> ArtistProfile:
    return ArtistProfile(
        entity_id="e1",
        track_matrix=[make_profile(f"{prefix}{i}") for i in range(count)],
        lifecycle_state=state,
        target_track_count=target,
        version=version,
        built_at=BUILT_AT if state is LifecycleState.BUILT else None,
    )


def _new(count: int, prefix: str = "new") -> list:
    return [make_profile(f"{prefix}{i}") for i in range(count)]


def _store(version: int | None = 1, flag_ok: bool = True) -> MagicMock:
    store = MagicMock()
    store.write_profile_content = AsyncMock(return_value=version)
    store.write_lifecycle_state = AsyncMock(return_value=flag_ok)
    return store


# ======================================================================
# merge
# ======================================================================


class TestMerge:
    def test_merging_same_tracks_twice_is_a_no_op(self) -> None:
        manager = ProfileLifecycleManager()
        first = manager.merge(_aggregate(), _new(3), 10).aggregate

        second = manager.merge(first, _new(3), 10)

        assert second.changed is False
        assert second.added == 0
        assert second.aggregate is first

    def test_empty_input_returns_aggregate_unchanged(self) -> None:
        existing = _aggregate(2, LifecycleState.STAGED)
        result = ProfileLifecycleManager().merge(existing, [], 10)
        assert result.aggregate is existing
        assert result.state is LifecycleState.STAGED

    def test_append_keeps_existing_copy_on_duplicate_id(self) -> None:
        existing = ArtistProfile(entity_id="e1", track_matrix=[make_profile("a", energy=0.1)])
        incoming = [make_profile("a", energy=0.9), make_profile("b"), make_profile("b")]

        result = ProfileLifecycleManager().merge(existing, incoming, 10)

        assert [t.track_id for t in result.aggregate.track_matrix] == ["a", "b"]
        assert result.aggregate.track_matrix[0].features.features["energy"] == 0.1
        assert result.added == 1

    def test_staged_then_built(self) -> None:
        manager = ProfileLifecycleManager()
        staged = manager.merge(_aggregate(), _new(4), 5)
        assert staged.state is LifecycleState.STAGED
        assert staged.aggregate.built_at is None

        built = manager.merge(staged.aggregate, _new(1, prefix="more"), 5)
        assert built.state is LifecycleState.BUILT
        assert built.aggregate.built_at is not None
        assert built.aggregate.remaining == 0

    def test_derived_fields_recomputed(self) -> None:
        result = ProfileLifecycleManager().merge(
            _aggregate(), _new(2), 10, known_genres=["house"], artist_name="Bicep"
        )
        assert result.aggregate.genre_mapping.source is GenreSource.KNOWN
        assert result.aggregate.average_features["energy"] == pytest.approx(0.7)
        assert result.aggregate.updated_at is not None

    def test_append_with_raised_target_keeps_built(self) -> None:
        existing = _aggregate(10, LifecycleState.BUILT, target=10)

        result = ProfileLifecycleManager().merge(existing, _new(1), 20)

        assert result.state is LifecycleState.BUILT
        assert result.aggregate.target_track_count == 10
        assert result.aggregate.built_at == BUILT_AT

    def test_replace_that_would_downgrade_is_refused(self) -> None:
        existing = _aggregate(10, LifecycleState.BUILT, target=10)

        result = ProfileLifecycleManager().merge(existing, _new(3), 10, mode=MergeMode.REPLACE)

        assert result.downgrade_blocked is True
        assert result.changed is False
        assert result.aggregate is existing

    def test_replace_with_downgrade_allowed(self) -> None:
        existing = _aggregate(10, LifecycleState.BUILT, target=10)

        result = ProfileLifecycleManager().merge(
            existing, _new(3), 10, mode=MergeMode.REPLACE, allow_downgrade=True
        )

        assert result.state is LifecycleState.STAGED
        assert len(result.aggregate.track_matrix) == 3
        assert result.aggregate.built_at is None


# ======================================================================
# commit
# ======================================================================


class TestCommit:
    @pytest.mark.asyncio
    async def test_content_written_before_flag(self) -> None:
        calls: list[str] = []
        store = _store(version=4)
        store.write_profile_content.side_effect = lambda profile: calls.append("content") or 4
        store.write_lifecycle_state.side_effect = lambda *a, **kw: calls.append("flag") or True
        manager = ProfileLifecycleManager(store=store)

        result = await manager.commit(_aggregate(), _new(10), 10)

        assert calls == ["content", "flag"]
        assert result.persisted is True
        assert result.version == 4
        assert result.state is LifecycleState.BUILT
        assert result.previous_state is LifecycleState.ABSENT
        assert result.aggregate.version == 4
        args = store.write_lifecycle_state.await_args
        assert args.args[:2] == ("e1", LifecycleState.BUILT)
        assert args.kwargs["expected_version"] == 4

    @pytest.mark.asyncio
    async def test_unconfirmed_content_never_advances_flag(self) -> None:
        store = _store(version=None)
        manager = ProfileLifecycleManager(store=store)

        result = await manager.commit(_aggregate(), _new(10), 10)

        store.write_lifecycle_state.assert_not_awaited()
        assert result.persisted is False
        assert result.write_attempted is True
        assert result.state is LifecycleState.ABSENT

    @pytest.mark.asyncio
    async def test_content_write_error_never_advances_flag(self) -> None:
        store = _store()
        store.write_profile_content = AsyncMock(side_effect=PersistenceError("disk full"))
        manager = ProfileLifecycleManager(store=store)

        result = await manager.commit(_aggregate(2, LifecycleState.STAGED), _new(8), 10)

        store.write_lifecycle_state.assert_not_awaited()
        assert result.state is LifecycleState.STAGED
        assert result.persisted is False

    @pytest.mark.asyncio
    async def test_flag_write_error_keeps_merged_tracks(self) -> None:
        store = _store(version=3)
        store.write_lifecycle_state = AsyncMock(side_effect=PersistenceError("flag write failed"))
        manager = ProfileLifecycleManager(store=store)

        result = await manager.commit(_aggregate(2, LifecycleState.STAGED), _new(8), 10)

        assert result.state is LifecycleState.STAGED
        assert result.persisted is False
        assert result.write_attempted is True
        assert result.added == 8
        assert len(result.aggregate.track_matrix) == 10
        assert result.aggregate.lifecycle_state is LifecycleState.STAGED
        assert result.aggregate.built_at is None

    @pytest.mark.asyncio
    async def test_content_write_error_keeps_merged_tracks(self) -> None:
        store = _store()
        store.write_profile_content = AsyncMock(side_effect=PersistenceError("disk full"))

        result = await ProfileLifecycleManager(store=store).commit(_aggregate(1), _new(3), 10)

        assert [t.track_id for t in result.aggregate.track_matrix] == ["old0", "new0", "new1", "new2"]
        assert result.aggregate.lifecycle_state is LifecycleState.ABSENT

    @pytest.mark.asyncio
    async def test_flag_only_write_error_keeps_previous_state(self) -> None:
        store = _store()
        store.write_lifecycle_state = AsyncMock(side_effect=PersistenceError("database is locked"))
        existing = _aggregate(10, LifecycleState.STAGED, target=10, version=7)

        result = await ProfileLifecycleManager(store=store).commit(existing, [], 10)

        assert result.state is LifecycleState.STAGED
        assert result.persisted is False
        assert result.aggregate.built_at is None

    @pytest.mark.asyncio
    async def test_rejected_flag_keeps_previous_state(self) -> None:
        manager = ProfileLifecycleManager(store=_store(version=2, flag_ok=False))

        result = await manager.commit(_aggregate(), _new(10), 10)

        assert result.persisted is True
        assert result.state is LifecycleState.ABSENT
        assert result.aggregate.lifecycle_state is LifecycleState.ABSENT

    @pytest.mark.asyncio
    async def test_complete_content_only_needs_flag(self) -> None:
        store = _store()
        manager = ProfileLifecycleManager(store=store)
        existing = _aggregate(10, LifecycleState.STAGED, target=10, version=7)

        result = await manager.commit(existing, [], 10)

        store.write_profile_content.assert_not_awaited()
        store.write_lifecycle_state.assert_awaited_once()
        assert store.write_lifecycle_state.await_args.kwargs["expected_version"] == 7
        assert result.state is LifecycleState.BUILT
        assert result.aggregate.built_at is not None

    @pytest.mark.asyncio
    async def test_nothing_to_commit(self) -> None:
        store = _store()
        result = await ProfileLifecycleManager(store=store).commit(_aggregate(), [], 10)

        store.write_profile_content.assert_not_awaited()
        store.write_lifecycle_state.assert_not_awaited()
        assert result.state is LifecycleState.ABSENT

    @pytest.mark.asyncio
    async def test_requires_a_store(self) -> None:
        with pytest.raises(PersistenceError):
            await ProfileLifecycleManager().commit(_aggregate(), _new(1), 10)


def test_remaining() -> None:
    assert ProfileLifecycleManager.remaining(None, 10) == 10
    assert ProfileLifecycleManager.remaining(_aggregate(4), 10) == 6
    assert ProfileLifecycleManager.remaining(_aggregate(12), 10) == 0
