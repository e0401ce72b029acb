from src.providers.store.sqlite_profile_store import SQLiteProfileStore

__all__ = ["SQLiteProfileStore"]
