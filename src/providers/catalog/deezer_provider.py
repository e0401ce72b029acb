"""Deezer public search adapter (aggregator tier).  No credentials required."""

from __future__ import annotations

from typing import Any

import httpx

from src.interfaces.catalog_provider import CatalogQuery, ICatalogProvider, ProviderCandidate
from src.providers.catalog.http_utils import fetch_json
from src.utils.concurrency import RequestPacer
from src.utils.logging import get_logger

_SEARCH_URL = "https://api.deezer.com/search"
_MAX_RANK = 1_000_000


class DeezerProvider(ICatalogProvider):
    def __init__(self, http_client: httpx.AsyncClient, min_interval: float = 0.2) -> None:
        self._http = http_client
        self._pacer = RequestPacer(min_interval, name="deezer")
        self._logger = get_logger(__name__)

    @staticmethod
    def _candidate(item: dict[str, Any]) -> ProviderCandidate:
        rank = item.get("rank") or 0
        return ProviderCandidate(
            provider="deezer",
            audio_reference=item.get("preview") or None,
            title=item.get("title", ""),
            artist=(item.get("artist") or {}).get("name", ""),
            catalog_id=str(item["id"]) if item.get("id") else None,
            popularity=min(100, int(rank * 100 / _MAX_RANK)),
        )

    async def search(self, query: CatalogQuery) -> list[ProviderCandidate]:
        data = await fetch_json(
            self._http,
            _SEARCH_URL,
            provider="deezer",
            pacer=self._pacer,
            logger=self._logger,
            params={"q": query.text, "limit": query.limit},
        )
        if not data:
            return []
        return [self._candidate(item) for item in data.get("data", [])[: query.limit]]

    def get_provider_name(self) -> str:
        return "deezer"

    def is_available(self) -> bool:
        return True
