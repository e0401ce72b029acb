"""Catalog adapters used for track listing and audio-reference resolution."""

from src.providers.catalog.bandcamp_provider import BandcampProvider
from src.providers.catalog.deezer_provider import DeezerProvider
from src.providers.catalog.itunes_provider import ITunesProvider
from src.providers.catalog.soundcloud_provider import SoundCloudProvider
from src.providers.catalog.spotify_provider import SpotifyProvider
from src.providers.catalog.youtube_provider import YouTubeProvider

__all__ = [
    "BandcampProvider",
    "DeezerProvider",
    "ITunesProvider",
    "SoundCloudProvider",
    "SpotifyProvider",
    "YouTubeProvider",
]
