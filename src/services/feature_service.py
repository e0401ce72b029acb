"""Feature extraction with a two-tier fingerprint cache.

The fingerprint of an audio reference is the sha1 of the reference string.
Lookups go memory cache (``cachetools.TTLCache``) first, then the store's
``audio_features`` table, then the extractor.  Fresh results are written
back to both tiers.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

from src.interfaces.cache_provider import ICacheProvider
from src.interfaces.feature_extractor import IFeatureExtractor
from src.interfaces.profile_store import IProfileStore
from src.models.diagnostics import AnalysisDiagnostics
from src.models.track import FeatureVector
from src.utils.errors import ExtractionError, PersistenceError
from src.utils.logging import get_logger

logger = get_logger(__name__)


def fingerprint_reference(audio_reference: str) -> str:
    return hashlib.sha1(audio_reference.encode("utf-8")).hexdigest()  # noqa: S324


@dataclass(frozen=True)
class FeatureLookup:
    vector: FeatureVector
    fingerprint: str
    cached: bool


class FeatureService:
    def __init__(
        self,
        extractor: IFeatureExtractor,
        store: IProfileStore | None = None,
        cache: ICacheProvider | None = None,
    ) -> None:
        self._extractor = extractor
        self._store = store
        self._cache = cache

    async def analyze(
        self,
        audio_reference: str,
        track_id: str | None = None,
        diagnostics: AnalysisDiagnostics | None = None,
    ) -> FeatureLookup:
        """Return features for *audio_reference*, extracting only on a cache miss.

        Raises
        ------
        ExtractionError
            If the reference is not cached and extraction fails.
        """
        fingerprint = fingerprint_reference(audio_reference)
        cache_key = f"features:{fingerprint}"

        if self._cache is not None:
            hit = await self._cache.get(cache_key)
            if hit is not None:
                if diagnostics is not None:
                    diagnostics.extraction_cache_hits += 1
                return FeatureLookup(vector=hit, fingerprint=fingerprint, cached=True)

        if self._store is not None:
            try:
                stored = await self._store.get_cached_features(fingerprint=fingerprint, track_id=track_id)
            except PersistenceError as exc:
                logger.warning("feature_cache_read_failed", fingerprint=fingerprint, error=str(exc))
                stored = None
            if stored is not None:
                if self._cache is not None:
                    await self._cache.set(cache_key, stored)
                if diagnostics is not None:
                    diagnostics.extraction_cache_hits += 1
                return FeatureLookup(vector=stored, fingerprint=fingerprint, cached=True)

        if diagnostics is not None:
            diagnostics.extraction_attempts += 1
        try:
            vector = await self._extractor.extract(audio_reference, track_id=track_id)
        except ExtractionError:
            if diagnostics is not None:
                diagnostics.extraction_failures += 1
            raise

        vector = vector.model_copy(update={"fingerprint": fingerprint})
        if self._store is not None:
            try:
                await self._store.put_cached_features(fingerprint, audio_reference, vector, track_id=track_id)
            except PersistenceError as exc:
                logger.warning("feature_cache_write_failed", fingerprint=fingerprint, error=str(exc))
        if self._cache is not None:
            await self._cache.set(cache_key, vector)
        logger.debug("features_cached", fingerprint=fingerprint, track_id=track_id)
        return FeatureLookup(vector=vector, fingerprint=fingerprint, cached=False)
