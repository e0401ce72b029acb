"""Unit tests for the catalog adapters, all with a mocked httpx client."""

from __future__ import annotations

from datetime import date
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import structlog

from src.config.settings import Settings
from src.interfaces.catalog_provider import CatalogQuery
from src.models.resolution import SourceTag
from src.providers.cache.memory_cache import MemoryCacheProvider
from src.providers.catalog import (
    BandcampProvider,
    DeezerProvider,
    ITunesProvider,
    SoundCloudProvider,
    SpotifyProvider,
    YouTubeProvider,
)
from src.providers.catalog.http_utils import fetch_json
from src.providers.catalog.spotify_provider import parse_release_date
from src.utils.concurrency import RequestPacer
from src.utils.errors import ProviderResponseError, ProviderUnavailableError, RateLimitError


def _response(payload=None, status_code: int = 200, *, text: str = "", headers=None) -> MagicMock:
    return MagicMock(
        status_code=status_code,
        json=MagicMock(return_value=payload),
        text=text,
        headers=headers or {},
    )


def _client(*responses) -> MagicMock:
    client = MagicMock()
    client.get = AsyncMock(side_effect=list(responses))
    return client


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


QUERY = CatalogQuery(text="Bicep Glue", artist="Bicep", track="Glue")


# ======================================================================
# fetch_json
# ======================================================================


class TestFetchJson:
    async def _fetch(self, client):
        return await fetch_json(
            client,
            "https://api.example/search",
            provider="example",
            pacer=RequestPacer(0),
            logger=structlog.get_logger(),
        )

    @pytest.mark.asyncio
    async def test_decodes_json(self) -> None:
        assert await self._fetch(_client(_response({"ok": True}))) == {"ok": True}

    @pytest.mark.asyncio
    async def test_not_found_is_empty(self) -> None:
        assert await self._fetch(_client(_response({}, status_code=404))) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [500, 503])
    async def test_server_errors_raise_unavailable(self, status_code) -> None:
        with pytest.raises(ProviderUnavailableError) as info:
            await self._fetch(_client(_response({}, status_code=status_code)))
        assert info.value.provider_name == "example"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [400, 401, 403])
    async def test_client_errors_raise_response_error(self, status_code) -> None:
        with pytest.raises(ProviderResponseError) as info:
            await self._fetch(_client(_response({}, status_code=status_code)))
        assert info.value.status_code == status_code

    @pytest.mark.asyncio
    async def test_transport_error_raises_unavailable(self) -> None:
        client = MagicMock()
        client.get = AsyncMock(side_effect=httpx.ReadTimeout("slow"))
        with pytest.raises(ProviderUnavailableError, match="slow"):
            await self._fetch(client)

    @pytest.mark.asyncio
    async def test_invalid_json_is_empty(self) -> None:
        response = _response()
        response.json = MagicMock(side_effect=ValueError("not json"))
        assert await self._fetch(_client(response)) is None

    @pytest.mark.asyncio
    async def test_rate_limit_raises(self) -> None:
        with pytest.raises(RateLimitError) as info:
            await self._fetch(_client(_response(status_code=429, headers={"retry-after": "3"})))
        assert info.value.retry_after == 3.0
        assert info.value.provider_name == "example"


# ======================================================================
# iTunes / Deezer
# ======================================================================


ITUNES_RESULTS = {
    "results": [
        {
            "kind": "song",
            "trackId": 111,
            "trackName": "Glue",
            "artistName": "Bicep",
            "previewUrl": "https://audio-ssl.itunes.apple.com/glue.m4a",
            "collectionId": 9,
            "collectionName": "Bicep",
            "releaseDate": "2024-02-01T08:00:00Z",
        },
        {
            "kind": "song",
            "trackId": 222,
            "trackName": "Glue (Cover)",
            "artistName": "Somebody Else",
            "previewUrl": "https://audio-ssl.itunes.apple.com/cover.m4a",
        },
        {"kind": "music-video", "trackId": 333, "trackName": "Glue", "artistName": "Bicep"},
    ]
}


class TestITunesProvider:
    @pytest.mark.asyncio
    async def test_search_returns_preview_candidates(self) -> None:
        client = _client(_response(ITUNES_RESULTS))
        provider = ITunesProvider(client, _settings(itunes_countries="gb"), min_interval=0)

        candidates = await provider.search(QUERY)

        assert [c.catalog_id for c in candidates] == ["111", "222"]
        assert candidates[0].audio_reference.endswith("glue.m4a")
        params = client.get.await_args.kwargs["params"]
        assert params["term"] == "Bicep Glue"
        assert params["country"] == "GB"

    @pytest.mark.asyncio
    async def test_artist_catalog_keeps_matching_artist_only(self) -> None:
        provider = ITunesProvider(_client(_response(ITUNES_RESULTS)), _settings(), min_interval=0)

        tracks = await provider.search_artist_tracks("Bicep", 50, released_since=date(2023, 1, 1))

        assert [t.track_id for t in tracks] == ["itunes:111"]
        assert tracks[0].is_recent_release is True
        assert tracks[0].known_source is SourceTag.ALT_CATALOG_EXACT
        assert tracks[0].origin == "itunes"

    @pytest.mark.asyncio
    async def test_server_error_raises_for_the_engine_to_count(self) -> None:
        provider = ITunesProvider(_client(_response(status_code=503)), _settings(), min_interval=0)
        with pytest.raises(ProviderUnavailableError):
            await provider.search(QUERY)


class TestDeezerProvider:
    @pytest.mark.asyncio
    async def test_search_maps_rank_to_popularity(self) -> None:
        payload = {
            "data": [
                {"id": 1, "title": "Glue", "preview": "https://cdn.deezer/glue.mp3", "rank": 500000,
                 "artist": {"name": "Bicep"}},
                {"id": 2, "title": "Glue", "preview": "", "rank": 2_000_000, "artist": {"name": "Bicep"}},
            ]
        }
        provider = DeezerProvider(_client(_response(payload)), min_interval=0)

        candidates = await provider.search(QUERY)

        assert candidates[0].popularity == 50
        assert candidates[0].artist == "Bicep"
        assert candidates[1].audio_reference is None
        assert candidates[1].popularity == 100


# ======================================================================
# SoundCloud / YouTube / Bandcamp
# ======================================================================


class TestSoundCloudProvider:
    @pytest.mark.asyncio
    async def test_unconfigured_makes_no_request(self) -> None:
        client = _client()
        provider = SoundCloudProvider(client, _settings(soundcloud_client_id=""), min_interval=0)

        assert provider.is_available() is False
        assert await provider.search(QUERY) == []
        client.get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_streamable_tracks_only(self) -> None:
        payload = {
            "collection": [
                {
                    "id": 5,
                    "title": "Glue",
                    "streamable": True,
                    "stream_url": "https://api.soundcloud.com/tracks/5/stream",
                    "playback_count": 2_000_000,
                    "user": {"username": "Bicep", "verified": True},
                },
                {"id": 6, "title": "Glue", "streamable": False, "user": {"username": "fan"}},
            ]
        }
        provider = SoundCloudProvider(_client(_response(payload)), _settings(soundcloud_client_id="cid"), 0)

        candidates = await provider.search(QUERY)

        assert len(candidates) == 1
        candidate = candidates[0]
        assert candidate.audio_reference == "https://api.soundcloud.com/tracks/5/stream?client_id=cid"
        assert candidate.uploader == "Bicep"
        assert candidate.artist == "Bicep"
        assert candidate.verified is True
        assert candidate.popularity == 100


class TestYouTubeProvider:
    @pytest.mark.asyncio
    async def test_video_candidates(self) -> None:
        payload = {
            "items": [
                {
                    "id": {"videoId": "abc123"},
                    "snippet": {
                        "title": "Bicep - Glue (Official Audio)",
                        "description": "",
                        "channelTitle": "Bicep",
                    },
                },
                {"id": {"channelId": "chan"}, "snippet": {"title": "Bicep"}},
            ]
        }
        provider = YouTubeProvider(_client(_response(payload)), _settings(youtube_api_key="k"), 0)

        candidates = await provider.search(QUERY)

        assert len(candidates) == 1
        assert candidates[0].audio_reference == "https://www.youtube.com/watch?v=abc123"
        assert candidates[0].verified is True
        assert candidates[0].metadata["official_marker"] is True

    @pytest.mark.asyncio
    async def test_no_key_is_unavailable(self) -> None:
        provider = YouTubeProvider(_client(), _settings(youtube_api_key=""), 0)
        assert await provider.search(QUERY) == []


SEARCH_HTML = """
<ul>
  <li class="searchresult track">
    <div class="heading"><a href="https://bicep.bandcamp.com/track/glue?from=search">Glue</a></div>
    <div class="subhead">from Isles by Bicep</div>
  </li>
</ul>
"""

TRACK_HTML = """
<div id="pagedata" data-tralbum='{"artist": "Bicep", "trackinfo": [{"file": {"mp3-128": "https://t4.bcbits.com/stream/glue"}}]}'></div>
"""


class TestBandcampProvider:
    @pytest.mark.asyncio
    async def test_search_then_track_page(self) -> None:
        client = _client(_response(text=SEARCH_HTML), _response(text=TRACK_HTML))
        provider = BandcampProvider(client, _settings(), min_interval=0)

        candidates = await provider.search(QUERY)

        assert len(candidates) == 1
        assert candidates[0].audio_reference == "https://t4.bcbits.com/stream/glue"
        assert candidates[0].title == "Glue"
        assert candidates[0].artist == "Bicep"
        assert client.get.await_args_list[1].args[0] == "https://bicep.bandcamp.com/track/glue"

    @pytest.mark.asyncio
    async def test_track_page_without_stream(self) -> None:
        client = _client(_response(text=SEARCH_HTML), _response(text="<html></html>"))
        provider = BandcampProvider(client, _settings(), min_interval=0)
        assert await provider.search(QUERY) == []

    @pytest.mark.asyncio
    async def test_failed_track_page_is_skipped(self) -> None:
        client = _client(_response(text=SEARCH_HTML), _response(status_code=500))
        provider = BandcampProvider(client, _settings(), min_interval=0)
        assert await provider.search(QUERY) == []

    @pytest.mark.asyncio
    async def test_failed_search_page_raises(self) -> None:
        provider = BandcampProvider(_client(_response(status_code=503)), _settings(), min_interval=0)
        with pytest.raises(ProviderUnavailableError):
            await provider.search(QUERY)

    @pytest.mark.asyncio
    async def test_disabled(self) -> None:
        provider = BandcampProvider(_client(), _settings(bandcamp_enabled=False), min_interval=0)
        assert await provider.search(QUERY) == []


# ======================================================================
# Spotify
# ======================================================================


def _spotify(*get_responses, token_status: int = 200, cache=None) -> tuple[SpotifyProvider, MagicMock]:
    client = _client(*get_responses)
    client.post = AsyncMock(
        return_value=_response({"access_token": "tok", "expires_in": 3600}, status_code=token_status)
    )
    settings = _settings(spotify_client_id="id", spotify_client_secret="secret")
    return SpotifyProvider(client, settings, cache=cache, min_interval=0), client


class TestSpotifyProvider:
    @pytest.mark.asyncio
    async def test_token_fetched_once_and_cached(self) -> None:
        cache = MemoryCacheProvider()
        provider, client = _spotify(
            _response({"tracks": {"items": []}}), _response({"tracks": {"items": []}}), cache=cache
        )

        await provider.search(QUERY)
        await provider.search(QUERY)

        assert client.post.await_count == 1
        assert provider.token_status == "ok"
        assert await cache.exists("spotify:access_token")
        assert client.get.await_args.kwargs["headers"] == {"Authorization": "Bearer tok"}

    @pytest.mark.asyncio
    async def test_missing_credentials(self) -> None:
        client = _client()
        provider = SpotifyProvider(client, _settings(spotify_client_id="", spotify_client_secret=""), min_interval=0)

        assert await provider.get_top_tracks("a1") == []
        assert provider.token_status == "missing_credentials"
        client.get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rejected_token(self) -> None:
        provider, client = _spotify(token_status=401)
        assert await provider.find_artist_id("Bicep") is None
        assert provider.token_status == "http_401"

    @pytest.mark.asyncio
    async def test_find_artist_id_picks_close_match(self) -> None:
        payload = {"artists": {"items": [{"id": "x", "name": "Bicep Tribute Band"}, {"id": "a1", "name": "Bicep"}]}}
        provider, _ = _spotify(_response(payload))
        assert await provider.find_artist_id("bicep") == "a1"

    @pytest.mark.asyncio
    async def test_top_tracks_carry_preview_as_known_reference(self) -> None:
        payload = {
            "tracks": [
                {"id": "t1", "name": "Glue", "artists": [{"name": "Bicep"}], "popularity": 70,
                 "preview_url": "https://p.scdn.co/glue", "album": {"id": "al", "name": "Bicep"}},
                {"id": "t2", "name": "Atlas", "artists": [{"name": "Bicep"}], "preview_url": None},
            ]
        }
        provider, client = _spotify(_response(payload))

        tracks = await provider.get_top_tracks("a1")

        assert tracks[0].known_reference == "https://p.scdn.co/glue"
        assert tracks[0].known_source is SourceTag.PRIMARY_CATALOG
        assert tracks[1].known_source is SourceTag.NONE
        assert client.get.await_args.kwargs["params"] == {"market": "US"}

    @pytest.mark.asyncio
    async def test_recent_tracks_from_recent_albums_only(self) -> None:
        albums = {
            "items": [
                {"id": "old", "release_date": "2015"},
                {"id": "new", "release_date": "2024-05-01"},
                {"id": "mid", "release_date": "2023-11"},
            ]
        }
        new_tracks = {"items": [{"id": "n1", "name": "New One", "artists": [{"name": "Bicep"}]}]}
        mid_tracks = {"items": [{"id": "m1", "name": "Mid One", "artists": [{"name": "Bicep"}]}]}
        provider, client = _spotify(_response(albums), _response(new_tracks), _response(mid_tracks))

        tracks = await provider.get_recent_tracks("a1", date(2023, 1, 1), max_albums=10)

        assert [t.track_id for t in tracks] == ["n1", "m1"]
        assert all(t.is_recent_release for t in tracks)
        assert client.get.await_count == 3

    @pytest.mark.asyncio
    async def test_failed_album_is_skipped(self) -> None:
        albums = {"items": [{"id": "new", "release_date": "2024-05-01"}, {"id": "mid", "release_date": "2023-11"}]}
        mid_tracks = {"items": [{"id": "m1", "name": "Mid One", "artists": [{"name": "Bicep"}]}]}
        provider, _ = _spotify(_response(albums), _response(status_code=502), _response(mid_tracks))

        tracks = await provider.get_recent_tracks("a1", date(2023, 1, 1), max_albums=10)

        assert [t.track_id for t in tracks] == ["m1"]

    @pytest.mark.asyncio
    async def test_search_passes_market(self) -> None:
        items = {"tracks": {"items": [{"id": "t1", "name": "Glue", "artists": [{"name": "Bicep"}],
                                       "preview_url": "https://p.scdn.co/glue"}]}}
        provider, client = _spotify(_response(items))

        candidates = await provider.search(CatalogQuery(text="Bicep Glue", artist="Bicep", market="GB"))

        assert candidates[0].catalog_id == "t1"
        assert client.get.await_args.kwargs["params"]["market"] == "GB"

    def test_query_variants(self) -> None:
        provider, _ = _spotify()
        assert provider.query_variants("Bicep", "Glue") == [
            'track:"Glue" artist:"Bicep"',
            'track:"Glue" "Bicep"',
        ]
        assert provider.query_variants("Bicep", "") == ['artist:"Bicep"']
        assert provider.partitions_by_market() is True


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("2024", date(2024, 1, 1)),
        ("2024-05", date(2024, 5, 1)),
        ("2024-05-17", date(2024, 5, 17)),
        (None, None),
        ("soon", None),
    ],
)
def test_parse_release_date(raw, expected) -> None:
    assert parse_release_date(raw) == expected
