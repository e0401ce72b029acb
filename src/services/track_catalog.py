"""Track acquisition for artist analysis.

Builds the candidate track list the staged orchestrator draws its rounds
from.  Sources are tried in order and later ones only run when earlier
ones came back empty:

1. primary catalog top tracks (market US) plus recent releases
2. primary catalog ``artist:"name"`` search
3. alternative catalog artist search

Tracks already present in the artist's aggregate are dropped here so a
resumed run only spends its budget on new tracks.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta

import httpx

from src.config.tuning import StageConfig
from src.interfaces.track_source import ITrackSource
from src.models.diagnostics import AnalysisDiagnostics
from src.models.track import TrackDescriptor
from src.utils.errors import SoundMatrixError
from src.utils.logging import get_logger

logger = get_logger(__name__)

_ALT_CATALOG_MAX_LIMIT = 50
_SEARCH_MIN_LIMIT = 20


@dataclass
class AcquiredTracks:
    top: list[TrackDescriptor] = field(default_factory=list)
    recent: list[TrackDescriptor] = field(default_factory=list)
    method: str = "none"
    failure_reasons: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.top) + len(self.recent)


def _partition(tracks: list[TrackDescriptor]) -> tuple[list[TrackDescriptor], list[TrackDescriptor]]:
    """Split a flat search result into (top by popularity, recent)."""
    recent = [t for t in tracks if t.is_recent_release]
    top = sorted((t for t in tracks if not t.is_recent_release), key=lambda t: t.popularity, reverse=True)
    return top, recent


class TrackCatalogService:
    """Acquire an artist's tracks from the primary and alternative catalogs."""

    def __init__(
        self,
        primary: ITrackSource | None,
        alternative: ITrackSource | None,
        config: StageConfig | None = None,
    ) -> None:
        self._primary = primary
        self._alternative = alternative
        self._config = config or StageConfig()

    def released_since(self, today: date | None = None) -> date:
        today = today or date.today()
        return today - timedelta(days=365 * self._config.recent_release_years)

    async def _call(self, label: str, acquired: AcquiredTracks, coro) -> list[TrackDescriptor]:
        try:
            return await coro
        except (SoundMatrixError, httpx.HTTPError) as exc:
            acquired.failure_reasons.append(f"{label}: {exc}")
            logger.warning("track_acquisition_failed", source=label, error=str(exc))
            return []

    async def acquire(
        self,
        artist_name: str,
        diagnostics: AnalysisDiagnostics,
        *,
        max_tracks: int,
        catalog_id: str | None = None,
        include_recent: bool = True,
        exclude_ids: frozenset[str] = frozenset(),
    ) -> AcquiredTracks:
        acquired = AcquiredTracks()
        since = self.released_since()

        if self._primary is not None and self._primary.is_available():
            artist_id = catalog_id or await self._call(
                "artist_lookup", acquired, self._primary.find_artist_id(artist_name)
            )
            if artist_id:
                acquired.top = await self._call("top_tracks", acquired, self._primary.get_top_tracks(artist_id))
                if acquired.top:
                    diagnostics.methods["top_tracks"] += 1
                if include_recent:
                    recent = await self._call(
                        "recent_releases",
                        acquired,
                        self._primary.get_recent_tracks(artist_id, since, self._config.max_recent_albums),
                    )
                    top_ids = {t.track_id for t in acquired.top}
                    acquired.recent = [t for t in recent if t.track_id not in top_ids]
                    if acquired.recent:
                        diagnostics.methods["recent_releases"] += 1
                acquired.method = "top_tracks"
            else:
                acquired.failure_reasons.append("primary catalog artist not found")

            if acquired.total == 0:
                diagnostics.fallbacks.append("artist_search")
                found = await self._call(
                    "artist_search",
                    acquired,
                    self._primary.search_artist_tracks(
                        artist_name, max(max_tracks * 2, _SEARCH_MIN_LIMIT), since if include_recent else None
                    ),
                )
                acquired.top, acquired.recent = _partition(found)
                if found:
                    acquired.method = "artist_search"
                    diagnostics.methods["artist_search"] += 1

            token_status = getattr(self._primary, "token_status", None)
            if token_status:
                diagnostics.catalog_token_status = token_status
        else:
            diagnostics.catalog_token_status = "unavailable"

        if acquired.total == 0 and self._alternative is not None and self._alternative.is_available():
            diagnostics.fallbacks.append("alt_catalog")
            found = await self._call(
                "alt_catalog",
                acquired,
                self._alternative.search_artist_tracks(
                    artist_name,
                    min(_ALT_CATALOG_MAX_LIMIT, max_tracks * 3),
                    since if include_recent else None,
                ),
            )
            acquired.top, acquired.recent = _partition(found)
            if found:
                acquired.method = "alt_catalog"
                diagnostics.methods["alt_catalog"] += 1

        diagnostics.initial_tracks = acquired.total
        if exclude_ids:
            before = acquired.total
            acquired.top = [t for t in acquired.top if t.track_id not in exclude_ids]
            acquired.recent = [t for t in acquired.recent if t.track_id not in exclude_ids]
            diagnostics.skipped_existing += before - acquired.total

        logger.info(
            "tracks_acquired",
            artist=artist_name,
            method=acquired.method,
            top=len(acquired.top),
            recent=len(acquired.recent),
            skipped_existing=diagnostics.skipped_existing,
        )
        return acquired
