"""HTTP client for the external feature-extraction service.

The service downloads the audio behind a reference, analyses it, and
answers with scalar descriptors plus a fixed-length embedding::

    POST {base_url}/extract
    {"audioUrl": "...", "trackId": "..."}

    200 {"features": {"energy": 0.81, "tempo": 127.9, ...},
         "embedding": [...], "version": "2.3"}

Any transport failure, non-200 status or malformed body becomes an
:class:`~src.utils.errors.ExtractionError`.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from src.config.settings import Settings
from src.interfaces.feature_extractor import IFeatureExtractor
from src.models.track import FeatureVector
from src.utils.errors import ExtractionError

logger = structlog.get_logger(logger_name=__name__)


class HTTPFeatureExtractor(IFeatureExtractor):
    """Feature extractor that delegates to a remote analysis service."""

    def __init__(self, http_client: httpx.AsyncClient, settings: Settings) -> None:
        self._http = http_client
        self._base_url = settings.feature_extractor_url.rstrip("/")
        self._timeout = settings.feature_extractor_timeout

    @staticmethod
    def _parse(payload: Any) -> FeatureVector:
        if not isinstance(payload, dict) or not isinstance(payload.get("features"), dict):
            raise ExtractionError(message="Malformed extractor response", provider_name="extractor")
        features: dict[str, float] = {}
        for name, value in payload["features"].items():
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                features[name] = float(value)
        if not features:
            raise ExtractionError(message="Extractor returned no features", provider_name="extractor")
        return FeatureVector(
            features=features,
            embedding=[float(v) for v in payload.get("embedding") or []],
            analysis_version=payload.get("version"),
        )

    async def extract(self, audio_reference: str, track_id: str | None = None) -> FeatureVector:
        body: dict[str, Any] = {"audioUrl": audio_reference}
        if track_id:
            body["trackId"] = track_id
        try:
            response = await self._http.post(
                f"{self._base_url}/extract", json=body, timeout=self._timeout
            )
        except httpx.HTTPError as exc:
            raise ExtractionError(
                message=f"Extractor request failed: {exc}", provider_name="extractor"
            ) from exc

        if response.status_code != 200:
            raise ExtractionError(
                message=f"Extractor returned HTTP {response.status_code}",
                provider_name="extractor",
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise ExtractionError(
                message="Extractor returned invalid JSON", provider_name="extractor"
            ) from exc

        vector = self._parse(payload)
        logger.debug(
            "features_extracted",
            track_id=track_id,
            feature_count=len(vector.features),
            embedding_dim=len(vector.embedding),
        )
        return vector

    def get_provider_name(self) -> str:
        return "extractor"

    def is_available(self) -> bool:
        return bool(self._base_url)
