"""Abstract base class for catalog provider adapters.

One adapter per external source (Spotify, iTunes Search, SoundCloud,
Deezer, YouTube, Bandcamp).  Each proposes :class:`ProviderCandidate`
objects for a track; the resolution engine scores them and picks one.
Adapters are independent and share no state beyond the injected
``httpx.AsyncClient``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ProviderCandidate:
    """One adapter's proposed match for a track.

    Attributes
    ----------
    provider:
        Adapter name that produced the candidate (``"itunes"``...).
    audio_reference:
        Playable URL (preview, stream or video page).  ``None`` when the
        provider matched the track but has nothing playable.
    title:
        Track title as listed by the provider.
    artist:
        Credited artist string as listed by the provider.
    uploader:
        Uploader / channel name for community and video sources.
    catalog_id:
        Provider-specific identifier of the matched item.
    popularity:
        Provider popularity signal normalised to 0--100, when available.
    verified:
        ``True`` when the provider marks the uploader as verified/official.
    metadata:
        Arbitrary provider payload kept for diagnostics.
    """

    provider: str
    audio_reference: str | None
    title: str = ""
    artist: str = ""
    uploader: str = ""
    catalog_id: str | None = None
    popularity: int | None = None
    verified: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CatalogQuery:
    """A single search request to an adapter.

    ``text`` is the literal query string sent to the provider; ``artist``
    and ``track`` are the structured parts it was built from (``track`` is
    empty for artist-only queries).
    """

    text: str
    artist: str
    track: str = ""
    market: str | None = None
    limit: int = 5


class ICatalogProvider(ABC):
    """Contract for catalog adapters used during audio-reference resolution.

    Implementations translate HTTP failures into an empty result (or a
    :class:`~src.utils.errors.ProviderUnavailableError`); the resolution
    engine treats both as "no candidate from this provider".
    """

    @abstractmethod
    async def search(self, query: CatalogQuery) -> list[ProviderCandidate]:
        """Run *query* against the provider.

        Parameters
        ----------
        query:
            The search request.  ``query.market`` is only honoured by
            adapters whose :meth:`partitions_by_market` returns ``True``.

        Returns
        -------
        list[ProviderCandidate]
            Zero or more candidates in provider order.
        """

    async def lookup(self, candidate_id: str) -> ProviderCandidate | None:
        """Fetch a single item by provider id.

        Not every provider supports direct lookup; the default returns
        ``None``.
        """
        return None

    def query_variants(self, artist: str, track: str) -> list[str]:
        """Return the literal query strings to try for *artist* / *track*.

        The default is one free-text query; adapters with a structured
        query syntax override this.  An empty *track* means artist-only.
        """
        return [f"{artist} {track}".strip()]

    def relaxed_query_variants(self, artist: str, simplified_track: str) -> list[str]:
        """Return the query strings to try once exact queries have failed.

        *simplified_track* has already been through
        :func:`~src.utils.text_normalizer.simplify_track_name`.
        """
        return self.query_variants(artist, simplified_track)

    def partitions_by_market(self) -> bool:
        """Return ``True`` if results differ per geographic market."""
        return False

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"spotify"`` or ``"deezer"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured.

        Implementations check for credentials without performing a query.
        """
