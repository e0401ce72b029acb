"""Cache providers.

In-memory TTL cache fronting the SQLite feature cache, so repeated
analysis of the same audio reference inside one process skips the
database, and holding the primary catalog's access token.

MemoryCacheProvider is process-local. For multi-worker deployments, swap
in a Redis adapter implementing ICacheProvider without changing any
business logic.
"""

from src.providers.cache.memory_cache import MemoryCacheProvider

__all__ = ["MemoryCacheProvider"]
