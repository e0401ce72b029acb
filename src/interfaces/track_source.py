"""Abstract base class for upstream track-listing sources.

A track source answers "which tracks does this artist have?" before any
resolution happens.  The primary catalog (Spotify) supports top tracks and
recent releases; the alternative catalog (iTunes) only supports a plain
artist search, so the richer methods default to empty lists.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date

from src.models.track import TrackDescriptor


class ITrackSource(ABC):
    """Contract for catalogs that can list an artist's tracks."""

    async def find_artist_id(self, artist_name: str) -> str | None:
        """Resolve *artist_name* to a provider artist id, if supported."""
        return None

    async def get_top_tracks(self, artist_id: str) -> list[TrackDescriptor]:
        """Return the artist's most popular tracks, most popular first."""
        return []

    async def get_recent_tracks(
        self, artist_id: str, released_since: date, max_albums: int
    ) -> list[TrackDescriptor]:
        """Return tracks from releases on or after *released_since*.

        Parameters
        ----------
        artist_id:
            Provider artist identifier.
        released_since:
            Oldest release date to include.
        max_albums:
            Cap on how many releases are expanded into tracks.

        Returns
        -------
        list[TrackDescriptor]
            Tracks flagged ``is_recent_release=True``.
        """
        return []

    @abstractmethod
    async def search_artist_tracks(
        self, artist_name: str, limit: int, released_since: date | None = None
    ) -> list[TrackDescriptor]:
        """Search the catalog for tracks credited to *artist_name*.

        When *released_since* is given, tracks released on or after that
        date are flagged as recent.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"spotify"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the source is configured."""
