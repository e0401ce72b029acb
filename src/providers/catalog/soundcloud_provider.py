"""SoundCloud adapter: the community-hosted catalog.

Only streamable tracks exposing a ``stream_url`` become candidates; the
audio reference is the stream URL with the client id appended.
"""

from __future__ import annotations

from typing import Any

import httpx

from src.config.settings import Settings
from src.interfaces.catalog_provider import CatalogQuery, ICatalogProvider, ProviderCandidate
from src.providers.catalog.http_utils import fetch_json
from src.utils.concurrency import RequestPacer
from src.utils.logging import get_logger

_TRACKS_URL = "https://api.soundcloud.com/tracks"


class SoundCloudProvider(ICatalogProvider):
    def __init__(
        self,
        http_client: httpx.AsyncClient,
        settings: Settings,
        min_interval: float = 0.25,
    ) -> None:
        self._http = http_client
        self._client_id = settings.soundcloud_client_id
        self._pacer = RequestPacer(min_interval, name="soundcloud")
        self._logger = get_logger(__name__)

    def _candidate(self, item: dict[str, Any]) -> ProviderCandidate | None:
        stream_url = item.get("stream_url")
        if not item.get("streamable") or not stream_url:
            return None
        user = item.get("user") or {}
        uploader = user.get("username", "")
        return ProviderCandidate(
            provider="soundcloud",
            audio_reference=f"{stream_url}?client_id={self._client_id}",
            title=item.get("title", ""),
            # Community uploads rarely carry a separate artist field.
            artist=item.get("metadata_artist") or uploader,
            uploader=uploader,
            catalog_id=str(item["id"]) if item.get("id") else None,
            popularity=min(100, (item.get("playback_count") or 0) // 10_000),
            verified=bool(user.get("verified")),
            metadata={"permalink_url": item.get("permalink_url")},
        )

    async def search(self, query: CatalogQuery) -> list[ProviderCandidate]:
        if not self.is_available():
            return []
        data = await fetch_json(
            self._http,
            _TRACKS_URL,
            provider="soundcloud",
            pacer=self._pacer,
            logger=self._logger,
            params={"q": query.text, "client_id": self._client_id, "limit": query.limit},
        )
        if not isinstance(data, list):
            # Newer API versions wrap results in a collection.
            data = (data or {}).get("collection", []) if isinstance(data, dict) else []
        candidates = [self._candidate(item) for item in data]
        return [c for c in candidates if c is not None]

    def get_provider_name(self) -> str:
        return "soundcloud"

    def is_available(self) -> bool:
        return bool(self._client_id)
