"""iTunes Search API adapter: the alternative catalog.

No credentials required.  Used both as a track source (artist catalog
fallback when the primary catalog lists nothing) and as the alternative
catalog during resolution, where ``previewUrl`` is the audio reference.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

import httpx

from src.config.settings import Settings
from src.interfaces.catalog_provider import CatalogQuery, ICatalogProvider, ProviderCandidate
from src.interfaces.track_source import ITrackSource
from src.models.resolution import SourceTag
from src.models.track import AlbumInfo, TrackDescriptor
from src.providers.catalog.http_utils import fetch_json
from src.utils.concurrency import RequestPacer
from src.utils.logging import get_logger
from src.utils.text_normalizer import fuzzy_ratio

_SEARCH_URL = "https://itunes.apple.com/search"
_LOOKUP_URL = "https://itunes.apple.com/lookup"
_MAX_LIMIT = 200
_ARTIST_MATCH_THRESHOLD = 0.8


def _release_date(raw: str | None) -> date | None:
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).date()
    except ValueError:
        return None


class ITunesProvider(ICatalogProvider, ITrackSource):
    def __init__(
        self,
        http_client: httpx.AsyncClient,
        settings: Settings,
        min_interval: float = 0.35,
    ) -> None:
        self._http = http_client
        countries = settings.get_itunes_countries()
        self._country = countries[0] if countries else "US"
        self._pacer = RequestPacer(min_interval, name="itunes")
        self._logger = get_logger(__name__)

    async def _search(self, term: str, limit: int, country: str | None = None) -> list[dict[str, Any]]:
        data = await fetch_json(
            self._http,
            _SEARCH_URL,
            provider="itunes",
            pacer=self._pacer,
            logger=self._logger,
            params={
                "term": term,
                "media": "music",
                "entity": "song",
                "limit": min(limit, _MAX_LIMIT),
                "country": country or self._country,
            },
        )
        if not data:
            return []
        return [r for r in data.get("results", []) if r.get("kind", "song") == "song"]

    @staticmethod
    def _candidate(item: dict[str, Any]) -> ProviderCandidate:
        return ProviderCandidate(
            provider="itunes",
            audio_reference=item.get("previewUrl"),
            title=item.get("trackName", ""),
            artist=item.get("artistName", ""),
            catalog_id=str(item["trackId"]) if item.get("trackId") else None,
            metadata={
                "collection": item.get("collectionName"),
                "release_date": item.get("releaseDate"),
            },
        )

    # -- ITrackSource ----------------------------------------------------------

    async def search_artist_tracks(
        self, artist_name: str, limit: int, released_since: date | None = None
    ) -> list[TrackDescriptor]:
        results = await self._search(artist_name, limit)
        tracks: list[TrackDescriptor] = []
        for item in results:
            # Free-text search also matches titles; keep the artist's own tracks.
            if fuzzy_ratio(artist_name, item.get("artistName", "")) < _ARTIST_MATCH_THRESHOLD:
                continue
            if not item.get("trackId"):
                continue
            released = _release_date(item.get("releaseDate"))
            preview = item.get("previewUrl")
            tracks.append(
                TrackDescriptor(
                    track_id=f"itunes:{item['trackId']}",
                    name=item.get("trackName", ""),
                    artists=[item.get("artistName", artist_name)],
                    is_recent_release=bool(released_since and released and released >= released_since),
                    album=AlbumInfo(
                        album_id=str(item.get("collectionId", "")) or None,
                        name=item.get("collectionName", ""),
                        release_date=item.get("releaseDate"),
                    ),
                    known_reference=preview,
                    known_source=SourceTag.ALT_CATALOG_EXACT if preview else SourceTag.NONE,
                    origin="itunes",
                )
            )
        self._logger.debug("itunes_artist_catalog", artist=artist_name, count=len(tracks))
        return tracks

    # -- ICatalogProvider ------------------------------------------------------

    async def search(self, query: CatalogQuery) -> list[ProviderCandidate]:
        results = await self._search(query.text, query.limit, country=query.market)
        return [self._candidate(item) for item in results]

    async def lookup(self, candidate_id: str) -> ProviderCandidate | None:
        data = await fetch_json(
            self._http,
            _LOOKUP_URL,
            provider="itunes",
            pacer=self._pacer,
            logger=self._logger,
            params={"id": candidate_id.removeprefix("itunes:"), "country": self._country},
        )
        results = (data or {}).get("results", [])
        return self._candidate(results[0]) if results else None

    def get_provider_name(self) -> str:
        return "itunes"

    def is_available(self) -> bool:
        return True
