"""YouTube Data API adapter (aggregator tier).

Returns the video page URL as the audio reference.  Results whose title or
description mention ``official`` are flagged verified, and ones mentioning
``audio`` or ``hq`` carry an ``official_marker`` hint for scoring.
"""

from __future__ import annotations

from typing import Any

import httpx

from src.config.settings import Settings
from src.interfaces.catalog_provider import CatalogQuery, ICatalogProvider, ProviderCandidate
from src.providers.catalog.http_utils import fetch_json
from src.utils.concurrency import RequestPacer
from src.utils.logging import get_logger

_SEARCH_URL = "https://www.googleapis.com/youtube/v3/search"
_WATCH_URL = "https://www.youtube.com/watch?v={video_id}"
_QUALITY_MARKERS = ("audio", "hq")


class YouTubeProvider(ICatalogProvider):
    def __init__(
        self,
        http_client: httpx.AsyncClient,
        settings: Settings,
        min_interval: float = 0.2,
    ) -> None:
        self._http = http_client
        self._api_key = settings.youtube_api_key
        self._pacer = RequestPacer(min_interval, name="youtube")
        self._logger = get_logger(__name__)

    @staticmethod
    def _candidate(item: dict[str, Any]) -> ProviderCandidate | None:
        video_id = (item.get("id") or {}).get("videoId")
        if not video_id:
            return None
        snippet = item.get("snippet") or {}
        title = snippet.get("title", "")
        text = f"{title} {snippet.get('description', '')}".lower()
        return ProviderCandidate(
            provider="youtube",
            audio_reference=_WATCH_URL.format(video_id=video_id),
            title=title,
            artist=snippet.get("channelTitle", ""),
            uploader=snippet.get("channelTitle", ""),
            catalog_id=video_id,
            verified="official" in text,
            metadata={"official_marker": any(m in text for m in _QUALITY_MARKERS)},
        )

    async def search(self, query: CatalogQuery) -> list[ProviderCandidate]:
        if not self.is_available():
            return []
        data = await fetch_json(
            self._http,
            _SEARCH_URL,
            provider="youtube",
            pacer=self._pacer,
            logger=self._logger,
            params={
                "part": "snippet",
                "q": query.text,
                "type": "video",
                "maxResults": query.limit,
                "key": self._api_key,
            },
        )
        if not data:
            return []
        candidates = [self._candidate(item) for item in data.get("items", [])]
        return [c for c in candidates if c is not None]

    def get_provider_name(self) -> str:
        return "youtube"

    def is_available(self) -> bool:
        return bool(self._api_key)
