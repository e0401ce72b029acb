"""Bandcamp web-scraping adapter (aggregator tier).

No API key required.  A track search scrapes ``bandcamp.com/search`` and
then opens each result's track page, whose ``data-tralbum`` attribute
carries a JSON blob with the 128 kbps MP3 stream.  Requests are throttled
to 2-second intervals and send a proper User-Agent header.
"""

from __future__ import annotations

import json

import httpx
from bs4 import BeautifulSoup

from src.config.settings import Settings
from src.interfaces.catalog_provider import CatalogQuery, ICatalogProvider, ProviderCandidate
from src.utils.concurrency import RequestPacer
from src.utils.errors import ProviderResponseError, ProviderUnavailableError
from src.utils.logging import get_logger

_SEARCH_URL = "https://bandcamp.com/search"
_USER_AGENT = "soundmatrix/0.1.0 (+https://github.com/soundmatrix)"
_MAX_PAGES_PER_SEARCH = 2


class BandcampProvider(ICatalogProvider):
    """Aggregator adapter that scrapes Bandcamp search and track pages.

    The ``httpx.AsyncClient`` is injected for testability.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        settings: Settings | None = None,
        min_interval: float = 2.0,
    ) -> None:
        self._http = http_client
        self._enabled = settings.bandcamp_enabled if settings is not None else True
        self._pacer = RequestPacer(min_interval, name="bandcamp")
        self._logger = get_logger(__name__)

    async def _fetch_page(self, url: str, params: dict[str, str] | None = None) -> BeautifulSoup | None:
        await self._pacer.wait()
        try:
            response = await self._http.get(
                url, params=params, headers={"User-Agent": _USER_AGENT}, follow_redirects=True
            )
        except httpx.HTTPError as exc:
            raise ProviderUnavailableError(
                message=f"bandcamp request failed: {exc}", provider_name="bandcamp"
            ) from exc
        if response.status_code == 404:
            return None
        if response.status_code >= 500:
            raise ProviderUnavailableError(
                message=f"bandcamp returned HTTP {response.status_code}", provider_name="bandcamp"
            )
        if response.status_code >= 400:
            raise ProviderResponseError(
                message=f"bandcamp returned HTTP {response.status_code}",
                provider_name="bandcamp",
                status_code=response.status_code,
            )
        return BeautifulSoup(response.text, "html.parser")

    @staticmethod
    def _parse_search_results(soup: BeautifulSoup) -> list[dict[str, str]]:
        results: list[dict[str, str]] = []
        for item in soup.select(".searchresult"):
            heading = item.select_one(".heading a")
            if not heading:
                continue
            url = heading.get("href", "").split("?")[0]
            if not url:
                continue
            subhead = item.select_one(".subhead")
            byline = subhead.get_text(" ", strip=True) if subhead else ""
            # Subhead reads "from <album> by <artist>".
            artist = byline.rsplit(" by ", 1)[-1].strip() if " by " in byline else ""
            results.append({"url": url, "title": heading.get_text(strip=True), "artist": artist})
        return results

    @staticmethod
    def _parse_stream_url(soup: BeautifulSoup) -> tuple[str | None, dict]:
        node = soup.select_one("[data-tralbum]")
        if node is None:
            return None, {}
        try:
            tralbum = json.loads(node["data-tralbum"])
        except (ValueError, KeyError):
            return None, {}
        trackinfo = tralbum.get("trackinfo") or []
        if not trackinfo:
            return None, tralbum
        stream = (trackinfo[0].get("file") or {}).get("mp3-128")
        return stream, tralbum

    async def search(self, query: CatalogQuery) -> list[ProviderCandidate]:
        if not self.is_available():
            return []
        soup = await self._fetch_page(_SEARCH_URL, params={"q": query.text, "item_type": "t"})
        if soup is None:
            return []

        candidates: list[ProviderCandidate] = []
        for result in self._parse_search_results(soup)[:_MAX_PAGES_PER_SEARCH]:
            try:
                page = await self._fetch_page(result["url"])
            except (ProviderUnavailableError, ProviderResponseError) as exc:
                self._logger.warning("bandcamp_track_page_failed", url=result["url"], error=str(exc))
                continue
            if page is None:
                continue
            stream, tralbum = self._parse_stream_url(page)
            if not stream:
                continue
            candidates.append(
                ProviderCandidate(
                    provider="bandcamp",
                    audio_reference=stream,
                    title=result["title"],
                    artist=tralbum.get("artist") or result["artist"],
                    catalog_id=result["url"],
                    metadata={"page_url": result["url"]},
                )
            )

        self._logger.debug("bandcamp_search_complete", query=query.text, results=len(candidates))
        return candidates

    def get_provider_name(self) -> str:
        return "bandcamp"

    def is_available(self) -> bool:
        return self._enabled
