"""Integration tests for the built-invariant scanner over a real store."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from src.models.profile import ArtistProfile, LifecycleState
from src.pipeline.lifecycle import ProfileLifecycleManager
from src.pipeline.reconciliation import ReconciliationScanner
from src.providers.store.sqlite_profile_store import SQLiteProfileStore
from tests.factories import make_profile

BUILT_AT = datetime(2024, 6, 1, tzinfo=timezone.utc)


async def _seeded_store(db_path) -> SQLiteProfileStore:
    """Store with one healthy built aggregate and two legacy violations."""
    store = SQLiteProfileStore(db_path=db_path)
    await store.initialize()

    healthy = ArtistProfile(entity_id="healthy", target_track_count=3)
    await ProfileLifecycleManager(store=store).commit(healthy, [make_profile(f"h{i}") for i in range(3)], 3)

    legacy = ArtistProfile(
        entity_id="legacy", track_matrix=[make_profile("l0"), make_profile("l1")], target_track_count=10
    )
    await store.write_profile_content(legacy)
    await store.write_lifecycle_state("legacy", LifecycleState.BUILT, BUILT_AT)

    await store.upsert_artist("hollow", "Hollow")
    await store.write_lifecycle_state("hollow", LifecycleState.BUILT, BUILT_AT)
    return store


@pytest.mark.asyncio
async def test_lifecycle_commits_never_violate(db_path) -> None:
    store = SQLiteProfileStore(db_path=db_path)
    await store.initialize()
    manager = ProfileLifecycleManager(store=store)
    aggregate = ArtistProfile(entity_id="e1", target_track_count=4)

    for batch in (["a", "b"], ["c"], ["d", "e"]):
        aggregate = (await manager.commit(aggregate, [make_profile(i) for i in batch], 4)).aggregate

    report = await ReconciliationScanner(store).scan()

    assert aggregate.lifecycle_state is LifecycleState.BUILT
    assert report.checked == 1
    assert report.violations == 0


@pytest.mark.asyncio
async def test_scan_reports_violations(db_path) -> None:
    store = await _seeded_store(db_path)

    report = await ReconciliationScanner(store).scan()

    assert report.checked == 3
    assert report.violations == 2
    assert report.entity_ids == ["hollow", "legacy"]
    legacy = next(s for s in report.sample if s["entityId"] == "legacy")
    assert legacy == {"entityId": "legacy", "name": "legacy", "trackCount": 2, "targetTrackCount": 10}


@pytest.mark.asyncio
async def test_dry_run_changes_nothing(db_path) -> None:
    store = await _seeded_store(db_path)

    outcome = await ReconciliationScanner(store).scan_and_repair(dry_run=True)

    assert outcome["cleared"] == 2
    assert outcome["dryRun"] is True
    assert (await store.get_artist("legacy")).lifecycle_state is LifecycleState.BUILT


@pytest.mark.asyncio
async def test_repair_clears_flags_and_keeps_tracks(db_path) -> None:
    store = await _seeded_store(db_path)
    scanner = ReconciliationScanner(store)

    outcome = await scanner.scan_and_repair()

    assert outcome["cleared"] == 2
    legacy = (await store.get_artist("legacy")).profile
    assert legacy.lifecycle_state is LifecycleState.STAGED
    assert [t.track_id for t in legacy.track_matrix] == ["l0", "l1"]
    assert (await store.get_artist("hollow")).lifecycle_state is LifecycleState.ABSENT
    assert (await store.get_artist("healthy")).lifecycle_state is LifecycleState.BUILT
    assert (await scanner.scan()).violations == 0


@pytest.mark.asyncio
async def test_repair_skips_aggregate_completed_after_scan(db_path) -> None:
    store = await _seeded_store(db_path)
    scanner = ReconciliationScanner(store)
    report = await scanner.scan()

    completed = ArtistProfile(
        entity_id="legacy", track_matrix=[make_profile(f"l{i}") for i in range(10)], target_track_count=10
    )
    await store.write_profile_content(completed)

    cleared = await scanner.repair(report.entity_ids)

    assert cleared == 1
    assert (await store.get_artist("legacy")).lifecycle_state is LifecycleState.BUILT
