"""Spotify Web API adapter: the primary catalog.

Serves two roles:

* :class:`~src.interfaces.track_source.ITrackSource`: lists an artist's
  top tracks, recent releases and a plain artist search, each track
  carrying Spotify's 30-second ``preview_url`` as its known reference.
* :class:`~src.interfaces.catalog_provider.ICatalogProvider`: preview
  *recovery*: re-searching the catalog per market for a copy of the track
  that does carry a preview.

Authentication uses the client-credentials flow.  The access token is
cached together with its expiry in the injected cache provider.
"""

from __future__ import annotations

import time
from datetime import date
from typing import Any

import httpx

from src.config.settings import Settings
from src.interfaces.cache_provider import ICacheProvider
from src.interfaces.catalog_provider import CatalogQuery, ICatalogProvider, ProviderCandidate
from src.interfaces.track_source import ITrackSource
from src.models.resolution import SourceTag
from src.models.track import AlbumInfo, TrackDescriptor
from src.providers.catalog.http_utils import fetch_json
from src.utils.concurrency import RequestPacer
from src.utils.errors import ProviderResponseError, ProviderUnavailableError
from src.utils.logging import get_logger
from src.utils.text_normalizer import fuzzy_ratio

_API_BASE = "https://api.spotify.com/v1"
_TOKEN_URL = "https://accounts.spotify.com/api/token"
_TOKEN_CACHE_KEY = "spotify:access_token"
_TOKEN_EXPIRY_MARGIN = 60.0
_LISTING_MARKET = "US"
_MAX_ALBUM_PAGE = 50
_MAX_SEARCH_LIMIT = 50
_ARTIST_MATCH_THRESHOLD = 0.85


def parse_release_date(raw: str | None) -> date | None:
    """Parse Spotify's ``YYYY``, ``YYYY-MM`` or ``YYYY-MM-DD`` release dates."""
    if not raw:
        return None
    parts = raw.split("-")
    try:
        year = int(parts[0])
        month = int(parts[1]) if len(parts) > 1 else 1
        day = int(parts[2][:2]) if len(parts) > 2 else 1
        return date(year, month, day)
    except (ValueError, IndexError):
        return None


class SpotifyProvider(ICatalogProvider, ITrackSource):
    """Primary catalog adapter backed by the Spotify Web API.

    The ``httpx.AsyncClient`` and the cache are injected for testability.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        settings: Settings,
        cache: ICacheProvider | None = None,
        min_interval: float = 0.1,
    ) -> None:
        self._http = http_client
        self._client_id = settings.spotify_client_id
        self._client_secret = settings.spotify_client_secret
        self._cache = cache
        self._pacer = RequestPacer(min_interval, name="spotify")
        self._token: tuple[str, float] | None = None
        self._token_status = "unknown"
        self._logger = get_logger(__name__)

    @property
    def token_status(self) -> str:
        return self._token_status

    # -- Auth ------------------------------------------------------------------

    async def _get_token(self) -> str | None:
        if not self.is_available():
            self._token_status = "missing_credentials"
            return None

        cached = self._token
        if cached is None and self._cache is not None:
            cached = await self._cache.get(_TOKEN_CACHE_KEY)
        if cached and cached[1] > time.monotonic():
            self._token_status = "ok"
            return cached[0]

        await self._pacer.wait()
        try:
            response = await self._http.post(
                _TOKEN_URL,
                data={"grant_type": "client_credentials"},
                auth=(self._client_id, self._client_secret),
            )
        except httpx.HTTPError as exc:
            self._token_status = "error"
            self._logger.warning("spotify_token_request_failed", error=str(exc))
            return None

        if response.status_code != 200:
            self._token_status = f"http_{response.status_code}"
            self._logger.warning("spotify_token_rejected", status=response.status_code)
            return None

        payload = response.json()
        token = payload.get("access_token")
        if not token:
            self._token_status = "error"
            return None
        expires_at = time.monotonic() + float(payload.get("expires_in", 3600)) - _TOKEN_EXPIRY_MARGIN
        self._token = (token, expires_at)
        if self._cache is not None:
            await self._cache.set(_TOKEN_CACHE_KEY, self._token)
        self._token_status = "ok"
        return token

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> Any | None:
        token = await self._get_token()
        if token is None:
            return None
        return await fetch_json(
            self._http,
            f"{_API_BASE}{path}",
            provider="spotify",
            pacer=self._pacer,
            logger=self._logger,
            params=params,
            headers={"Authorization": f"Bearer {token}"},
        )

    # -- Mapping ---------------------------------------------------------------

    @staticmethod
    def _descriptor(
        item: dict[str, Any],
        album: dict[str, Any] | None = None,
        recent: bool = False,
    ) -> TrackDescriptor:
        album_data = album or item.get("album") or {}
        preview = item.get("preview_url")
        return TrackDescriptor(
            track_id=item["id"],
            name=item.get("name", ""),
            artists=[a.get("name", "") for a in item.get("artists", []) if a.get("name")],
            popularity=item.get("popularity", 0) or 0,
            is_recent_release=recent,
            album=AlbumInfo(
                album_id=album_data.get("id"),
                name=album_data.get("name", ""),
                release_date=album_data.get("release_date"),
                album_type=album_data.get("album_type"),
            )
            if album_data
            else None,
            known_reference=preview,
            known_source=SourceTag.PRIMARY_CATALOG if preview else SourceTag.NONE,
            origin="spotify",
        )

    @staticmethod
    def _candidate(item: dict[str, Any]) -> ProviderCandidate:
        return ProviderCandidate(
            provider="spotify",
            audio_reference=item.get("preview_url"),
            title=item.get("name", ""),
            artist=", ".join(a.get("name", "") for a in item.get("artists", [])),
            catalog_id=item.get("id"),
            popularity=item.get("popularity"),
            metadata={"album": (item.get("album") or {}).get("name")},
        )

    # -- ITrackSource ----------------------------------------------------------

    async def find_artist_id(self, artist_name: str) -> str | None:
        data = await self._get(
            "/search", {"q": artist_name, "type": "artist", "limit": 5}
        )
        if not data:
            return None
        best: tuple[str, float] | None = None
        for item in data.get("artists", {}).get("items", []):
            score = fuzzy_ratio(artist_name, item.get("name", ""))
            if score >= _ARTIST_MATCH_THRESHOLD and (best is None or score > best[1]):
                best = (item["id"], score)
        return best[0] if best else None

    async def get_top_tracks(self, artist_id: str) -> list[TrackDescriptor]:
        data = await self._get(f"/artists/{artist_id}/top-tracks", {"market": _LISTING_MARKET})
        if not data:
            return []
        tracks = [self._descriptor(t) for t in data.get("tracks", []) if t.get("id")]
        self._logger.debug("spotify_top_tracks", artist_id=artist_id, count=len(tracks))
        return tracks

    async def get_recent_tracks(
        self, artist_id: str, released_since: date, max_albums: int
    ) -> list[TrackDescriptor]:
        data = await self._get(
            f"/artists/{artist_id}/albums",
            {
                "include_groups": "album,single",
                "market": _LISTING_MARKET,
                "limit": _MAX_ALBUM_PAGE,
            },
        )
        if not data:
            return []

        albums = []
        for album in data.get("items", []):
            released = parse_release_date(album.get("release_date"))
            if released is not None and released >= released_since:
                albums.append((released, album))
        albums.sort(key=lambda pair: pair[0], reverse=True)

        tracks: list[TrackDescriptor] = []
        for _, album in albums[:max_albums]:
            try:
                album_tracks = await self._get(f"/albums/{album['id']}/tracks", {"limit": 50})
            except (ProviderUnavailableError, ProviderResponseError) as exc:
                self._logger.warning("spotify_album_tracks_failed", album_id=album["id"], error=str(exc))
                continue
            if not album_tracks:
                continue
            for item in album_tracks.get("items", []):
                if item.get("id"):
                    tracks.append(self._descriptor(item, album=album, recent=True))

        self._logger.debug(
            "spotify_recent_tracks",
            artist_id=artist_id,
            albums=min(len(albums), max_albums),
            count=len(tracks),
        )
        return tracks

    async def search_artist_tracks(
        self, artist_name: str, limit: int, released_since: date | None = None
    ) -> list[TrackDescriptor]:
        data = await self._get(
            "/search",
            {
                "q": f'artist:"{artist_name}"',
                "type": "track",
                "market": _LISTING_MARKET,
                "limit": min(limit, _MAX_SEARCH_LIMIT),
            },
        )
        if not data:
            return []
        tracks: list[TrackDescriptor] = []
        for item in data.get("tracks", {}).get("items", []):
            if not item.get("id"):
                continue
            released = parse_release_date((item.get("album") or {}).get("release_date"))
            recent = bool(released_since and released and released >= released_since)
            tracks.append(self._descriptor(item, recent=recent))
        return tracks

    # -- ICatalogProvider ------------------------------------------------------

    async def search(self, query: CatalogQuery) -> list[ProviderCandidate]:
        params: dict[str, Any] = {"q": query.text, "type": "track", "limit": query.limit}
        if query.market:
            params["market"] = query.market
        data = await self._get("/search", params)
        if not data:
            return []
        return [self._candidate(item) for item in data.get("tracks", {}).get("items", [])]

    async def lookup(self, candidate_id: str) -> ProviderCandidate | None:
        data = await self._get(f"/tracks/{candidate_id}", {"market": _LISTING_MARKET})
        if not data or not data.get("id"):
            return None
        return self._candidate(data)

    def query_variants(self, artist: str, track: str) -> list[str]:
        if not track:
            return [f'artist:"{artist}"']
        return [f'track:"{track}" artist:"{artist}"', f'track:"{track}" "{artist}"']

    def relaxed_query_variants(self, artist: str, simplified_track: str) -> list[str]:
        return [f'track:"{simplified_track}" artist:"{artist}"', f"{simplified_track} {artist}"]

    def partitions_by_market(self) -> bool:
        return True

    def get_provider_name(self) -> str:
        return "spotify"

    def is_available(self) -> bool:
        return bool(self._client_id and self._client_secret)
