"""Public interface definitions for all external collaborators.

Every external API or service in the SoundMatrix pipeline is accessed
through the abstract base classes in this package.  Concrete adapters live
in ``src/providers/`` and are wired together in ``src/main.py``; unit tests
inject mocks or fakes in their place.

CONCRETE PROVIDER MAP:
    Interface          →  Concrete implementations (in src/providers/)
    ─────────────────────────────────────────────────────────────────────
    ICatalogProvider   →  SpotifyProvider, ITunesProvider, SoundCloudProvider,
                          DeezerProvider, YouTubeProvider, BandcampProvider
    ITrackSource       →  SpotifyProvider, ITunesProvider
    IFeatureExtractor  →  HTTPFeatureExtractor
    IProfileStore      →  SQLiteProfileStore
    ICacheProvider     →  MemoryCacheProvider
"""

from src.interfaces.cache_provider import ICacheProvider
from src.interfaces.catalog_provider import CatalogQuery, ICatalogProvider, ProviderCandidate
from src.interfaces.feature_extractor import IFeatureExtractor
from src.interfaces.profile_store import IProfileStore
from src.interfaces.track_source import ITrackSource

__all__ = [
    "CatalogQuery",
    "ICacheProvider",
    "ICatalogProvider",
    "IFeatureExtractor",
    "IProfileStore",
    "ITrackSource",
    "ProviderCandidate",
]
