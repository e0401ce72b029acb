"""Listener sound profiles built from a list of played tracks.

Each submitted track is resolved with the balanced strategy, its features
are extracted through the shared fingerprint cache, and the resulting
vectors are summarised into per-feature preferences (average, variance,
range).  The document is stored under the user id.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from src.interfaces.profile_store import IProfileStore
from src.models.diagnostics import AnalysisDiagnostics
from src.models.resolution import ResolutionStrategy
from src.models.track import FeatureVector, TrackDescriptor
from src.services.feature_service import FeatureService
from src.services.profile_derivation import sound_preferences
from src.services.resolution_engine import ResolutionEngine
from src.utils.errors import ExtractionError
from src.utils.logging import get_logger

logger = get_logger(__name__)


class UserProfileService:
    def __init__(
        self,
        engine: ResolutionEngine,
        features: FeatureService,
        store: IProfileStore | None = None,
    ) -> None:
        self._engine = engine
        self._features = features
        self._store = store

    async def build(
        self,
        user_id: str,
        tracks: list[TrackDescriptor],
        *,
        fast_mode: bool = True,
    ) -> dict[str, Any]:
        strategy = ResolutionStrategy.BALANCED
        diagnostics = AnalysisDiagnostics(
            strategy=strategy.value,
            fast_mode=fast_mode,
            attempt_budget=self._engine.config.attempt_budget(fast_mode),
        )
        vectors: list[FeatureVector] = []
        analysed: list[dict[str, Any]] = []

        for track in tracks:
            outcome = await self._engine.resolve(track, strategy, diagnostics, fast_mode=fast_mode)
            if not outcome.resolved or outcome.audio_reference is None:
                continue
            try:
                lookup = await self._features.analyze(outcome.audio_reference, track.track_id, diagnostics)
            except ExtractionError as exc:
                logger.warning("user_track_extraction_failed", user_id=user_id, track=track.name, error=str(exc))
                continue
            vectors.append(lookup.vector)
            analysed.append(
                {
                    "trackId": track.track_id,
                    "name": track.name,
                    "artist": track.primary_artist,
                    "audioSource": outcome.source_tag.value,
                    "features": lookup.vector.features,
                }
            )

        document = {
            "userId": user_id,
            "trackCount": len(analysed),
            "submittedTracks": len(tracks),
            "soundPreferences": sound_preferences(vectors),
            "tracks": analysed,
            "updatedAt": datetime.now(tz=timezone.utc).isoformat(),
        }
        if self._store is not None and analysed:
            await self._store.save_user_profile(user_id, document)
        logger.info("user_profile_built", user_id=user_id, tracks=len(analysed), submitted=len(tracks))
        return {**document, "diagnostics": diagnostics.to_dict()}
