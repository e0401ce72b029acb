"""Abstract base class for the feature-extraction collaborator.

The extraction engine is a black box: it takes a playable audio reference
and returns a :class:`~src.models.track.FeatureVector`.  Caching by content
fingerprint is layered on top by :class:`~src.services.feature_service.FeatureService`,
not by implementations of this interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.track import FeatureVector


class IFeatureExtractor(ABC):
    @abstractmethod
    async def extract(self, audio_reference: str, track_id: str | None = None) -> FeatureVector:
        """Extract features for *audio_reference*.

        Raises
        ------
        src.utils.errors.ExtractionError
            If the collaborator fails or returns an unusable payload.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier for the extraction backend."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the backend is configured."""
