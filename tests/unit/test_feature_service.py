"""Unit tests for FeatureService's two-tier fingerprint cache."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.providers.cache.memory_cache import MemoryCacheProvider
from src.services.feature_service import FeatureService, fingerprint_reference
from src.utils.errors import ExtractionError, PersistenceError
from tests.factories import make_vector

REF = "https://audio.example/glue.mp3"


def _extractor(vector=None, error: Exception | None = None) -> MagicMock:
    extractor = MagicMock()
    extractor.extract = AsyncMock(return_value=vector or make_vector(), side_effect=error)
    return extractor


def _store(cached=None) -> MagicMock:
    store = MagicMock()
    store.get_cached_features = AsyncMock(return_value=cached)
    store.put_cached_features = AsyncMock()
    return store


class TestFingerprint:
    def test_sha1_of_reference(self) -> None:
        assert fingerprint_reference("abc") == "a9993e364706816aba3e25717850c26c9cd0d89d"

    def test_stable(self) -> None:
        assert fingerprint_reference(REF) == fingerprint_reference(REF)


class TestAnalyze:
    @pytest.mark.asyncio
    async def test_miss_extracts_and_writes_both_tiers(self, diagnostics) -> None:
        extractor, store, cache = _extractor(), _store(), MemoryCacheProvider()
        service = FeatureService(extractor, store=store, cache=cache)

        lookup = await service.analyze(REF, "t1", diagnostics)

        assert lookup.cached is False
        assert lookup.vector.fingerprint == fingerprint_reference(REF)
        extractor.extract.assert_awaited_once_with(REF, track_id="t1")
        store.put_cached_features.assert_awaited_once()
        assert await cache.exists(f"features:{lookup.fingerprint}")
        assert diagnostics.extraction_attempts == 1

    @pytest.mark.asyncio
    async def test_second_call_hits_memory_cache(self, diagnostics) -> None:
        extractor, store = _extractor(), _store()
        service = FeatureService(extractor, store=store, cache=MemoryCacheProvider())

        await service.analyze(REF, "t1")
        lookup = await service.analyze(REF, "t1", diagnostics)

        assert lookup.cached is True
        assert extractor.extract.await_count == 1
        assert store.get_cached_features.await_count == 1
        assert diagnostics.extraction_cache_hits == 1

    @pytest.mark.asyncio
    async def test_store_hit_skips_extractor_and_fills_memory(self) -> None:
        extractor, cache = _extractor(), MemoryCacheProvider()
        service = FeatureService(extractor, store=_store(cached=make_vector(energy=0.2)), cache=cache)

        lookup = await service.analyze(REF)

        assert lookup.cached is True
        assert lookup.vector.features["energy"] == 0.2
        extractor.extract.assert_not_awaited()
        assert cache.size() == 1

    @pytest.mark.asyncio
    async def test_store_read_failure_falls_through_to_extractor(self) -> None:
        store = _store()
        store.get_cached_features = AsyncMock(side_effect=PersistenceError("locked"))
        extractor = _extractor()
        service = FeatureService(extractor, store=store)

        lookup = await service.analyze(REF)

        assert lookup.cached is False
        extractor.extract.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_store_write_failure_still_returns_vector(self) -> None:
        store = _store()
        store.put_cached_features = AsyncMock(side_effect=PersistenceError("disk I/O error"))
        cache = MemoryCacheProvider()
        service = FeatureService(_extractor(), store=store, cache=cache)

        lookup = await service.analyze(REF, track_id="t1")

        assert lookup.cached is False
        assert lookup.vector.fingerprint == fingerprint_reference(REF)
        assert await cache.get(f"features:{lookup.fingerprint}") is not None

    @pytest.mark.asyncio
    async def test_extraction_error_propagates_and_is_counted(self, diagnostics) -> None:
        service = FeatureService(_extractor(error=ExtractionError("decode failed")), store=_store())

        with pytest.raises(ExtractionError):
            await service.analyze(REF, diagnostics=diagnostics)

        assert diagnostics.extraction_attempts == 1
        assert diagnostics.extraction_failures == 1

    @pytest.mark.asyncio
    async def test_works_without_any_cache_tier(self) -> None:
        extractor = _extractor()
        service = FeatureService(extractor)

        await service.analyze(REF)
        await service.analyze(REF)

        assert extractor.extract.await_count == 2
