"""Abstract base class for the profile document store.

The store is the only shared mutable resource in the pipeline.  Writes are
last-writer-wins upserts keyed by ``entity_id``.  Content and lifecycle are
written by separate calls so the lifecycle manager can confirm the first
before issuing the second.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from src.models.profile import ArtistEntity, ArtistProfile, LifecycleState
from src.models.track import FeatureVector


class IProfileStore(ABC):
    """Contract for artist-profile and feature-cache persistence."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables / indices if they do not exist."""

    # -- artist entities -------------------------------------------------------

    @abstractmethod
    async def upsert_artist(
        self,
        entity_id: str,
        name: str,
        catalog_id: str | None = None,
        genres: list[str] | None = None,
    ) -> None:
        """Create or update the identity fields of an artist entity.

        Never touches the aggregate columns.
        """

    @abstractmethod
    async def get_artist(self, entity_id: str) -> ArtistEntity | None:
        """Load one artist with its aggregate (``profile`` is ``None`` when absent)."""

    @abstractmethod
    async def list_artists_needing_work(
        self, limit: int, include_built: bool = False
    ) -> list[ArtistEntity]:
        """Return artists whose lifecycle is ``absent`` or ``staged``.

        With *include_built* every artist is eligible (forced re-runs).
        """

    # -- aggregate -------------------------------------------------------------

    @abstractmethod
    async def write_profile_content(self, profile: ArtistProfile) -> int | None:
        """Persist track matrix, derived fields and target for ``profile.entity_id``.

        Returns
        -------
        int or None
            The new version number on success, ``None`` if the write could
            not be confirmed.  The lifecycle columns are left untouched.
        """

    @abstractmethod
    async def write_lifecycle_state(
        self,
        entity_id: str,
        state: LifecycleState,
        built_at: datetime | None,
        expected_version: int | None = None,
    ) -> bool:
        """Set the lifecycle flag.

        When *expected_version* is given the update only applies if the
        stored version still matches, so a flag is never written against
        content that another writer has since replaced.
        """

    @abstractmethod
    async def find_built_violations(self, limit: int) -> tuple[int, list[ArtistEntity]]:
        """Return ``(checked, violating)`` for built aggregates.

        A violation is ``built`` with an empty track matrix or fewer tracks
        than its target.
        """

    @abstractmethod
    async def clear_built_flags(self, entity_ids: list[str]) -> int:
        """Clear ``built`` on *entity_ids* that still violate the invariant.

        The violation check is re-evaluated atomically with the update.
        Track data is never modified.  Returns the number of rows changed.
        """

    @abstractmethod
    async def count_by_state(self) -> dict[str, int]:
        """Return artist counts keyed by lifecycle state value."""

    # -- feature cache ---------------------------------------------------------

    @abstractmethod
    async def get_cached_features(
        self, fingerprint: str | None = None, track_id: str | None = None
    ) -> FeatureVector | None:
        """Look up a cached feature vector by fingerprint, then by track id."""

    @abstractmethod
    async def put_cached_features(
        self,
        fingerprint: str,
        audio_reference: str,
        vector: FeatureVector,
        track_id: str | None = None,
    ) -> None:
        """Store *vector* under *fingerprint* (and *track_id* when given)."""

    # -- user profiles / stats -------------------------------------------------

    @abstractmethod
    async def save_user_profile(self, user_id: str, document: dict[str, Any]) -> None:
        """Upsert a listener's sound-preference profile."""

    @abstractmethod
    async def get_user_profile(self, user_id: str) -> dict[str, Any] | None:
        """Return a stored listener profile document, or ``None``."""

    @abstractmethod
    async def stats(self) -> dict[str, Any]:
        """Return lightweight counts for ``/health`` and ``/internal/metrics``."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier for this store backend."""
