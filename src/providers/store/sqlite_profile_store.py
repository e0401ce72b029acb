"""SQLite-backed profile document store.

Persists artist entities, their aggregates, the feature cache and
listener profiles to a local SQLite database (``data/profiles.db`` by
default).  Uses ``aiosqlite`` for async I/O; every call opens its own
connection, so the store is safe to share across concurrent batch jobs.

The aggregate is stored as a JSON document (``profile_json``) next to
denormalised ``track_count`` / ``target_track_count`` columns.  The
lifecycle columns (``lifecycle_state``, ``built_at``) are written
separately from the content, and the built-invariant check and repair run
entirely in SQL against the denormalised counts.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from src.interfaces.profile_store import IProfileStore
from src.models.profile import ArtistEntity, ArtistProfile, LifecycleState
from src.models.track import FeatureVector
from src.utils.errors import PersistenceError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/profiles.db")

_CREATE_TABLES_SQL = [
    """\
CREATE TABLE IF NOT EXISTS artists (
    entity_id           TEXT    PRIMARY KEY,
    name                TEXT    NOT NULL,
    catalog_id          TEXT,
    genres_json         TEXT    NOT NULL DEFAULT '[]',
    lifecycle_state     TEXT    NOT NULL DEFAULT 'absent',
    track_count         INTEGER NOT NULL DEFAULT 0,
    target_track_count  INTEGER NOT NULL DEFAULT 10,
    version             INTEGER NOT NULL DEFAULT 0,
    profile_json        TEXT,
    updated_at          TEXT,
    built_at            TEXT
);
""",
    """\
CREATE TABLE IF NOT EXISTS audio_features (
    fingerprint      TEXT PRIMARY KEY,
    track_id         TEXT,
    audio_reference  TEXT NOT NULL,
    vector_json      TEXT NOT NULL,
    created_at       TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);
""",
    """\
CREATE TABLE IF NOT EXISTS user_sound_profiles (
    user_id       TEXT PRIMARY KEY,
    profile_json  TEXT NOT NULL,
    updated_at    TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);
""",
]

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_artists_state ON artists(lifecycle_state);",
    "CREATE INDEX IF NOT EXISTS idx_features_track ON audio_features(track_id);",
]

_UPSERT_ARTIST_SQL = """\
INSERT INTO artists (entity_id, name, catalog_id, genres_json)
VALUES (?, ?, ?, ?)
ON CONFLICT(entity_id)
DO UPDATE SET name        = excluded.name,
              catalog_id  = COALESCE(excluded.catalog_id, artists.catalog_id),
              genres_json = CASE WHEN excluded.genres_json = '[]'
                                 THEN artists.genres_json
                                 ELSE excluded.genres_json END;
"""

_WRITE_CONTENT_SQL = """\
INSERT INTO artists (entity_id, name, track_count, target_track_count, version,
                     profile_json, updated_at)
VALUES (?, ?, ?, ?, 1, ?, ?)
ON CONFLICT(entity_id)
DO UPDATE SET track_count        = excluded.track_count,
              target_track_count = excluded.target_track_count,
              profile_json       = excluded.profile_json,
              updated_at         = excluded.updated_at,
              version            = artists.version + 1;
"""

_VIOLATION_PREDICATE = "(track_count = 0 OR track_count < target_track_count)"

_CLEAR_BUILT_SQL = f"""\
UPDATE artists
SET lifecycle_state = CASE WHEN track_count > 0 THEN 'staged' ELSE 'absent' END,
    built_at        = NULL
WHERE entity_id = ?
  AND lifecycle_state = 'built'
  AND {_VIOLATION_PREDICATE};
"""

_SELECT_ARTIST_COLUMNS = (
    "entity_id, name, catalog_id, genres_json, lifecycle_state, track_count, "
    "target_track_count, version, profile_json, updated_at, built_at"
)


def _now() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


def _row_to_entity(row: aiosqlite.Row) -> ArtistEntity:
    profile: ArtistProfile | None = None
    if row["profile_json"]:
        doc = json.loads(row["profile_json"])
        # Lifecycle and version columns are authoritative over the document.
        doc.update(
            {
                "lifecycleState": row["lifecycle_state"],
                "builtAt": row["built_at"],
                "version": row["version"],
                "targetTrackCount": row["target_track_count"],
                "updatedAt": row["updated_at"],
            }
        )
        profile = ArtistProfile.from_document(row["entity_id"], doc)
    elif row["lifecycle_state"] != LifecycleState.ABSENT.value:
        profile = ArtistProfile(
            entity_id=row["entity_id"],
            lifecycle_state=LifecycleState(row["lifecycle_state"]),
            target_track_count=row["target_track_count"],
            version=row["version"],
        )
    return ArtistEntity(
        entity_id=row["entity_id"],
        name=row["name"],
        catalog_id=row["catalog_id"],
        genres=json.loads(row["genres_json"] or "[]"),
        profile=profile,
    )


class SQLiteProfileStore(IProfileStore):
    """SQLite-backed artist profile persistence."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    @asynccontextmanager
    async def _connect(self, operation: str) -> AsyncIterator[aiosqlite.Connection]:
        """Open a connection; driver errors surface as PersistenceError."""
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                yield db
        except aiosqlite.Error as exc:
            logger.error("profile_store_error", operation=operation, error=str(exc))
            raise PersistenceError(
                message=f"{operation} failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def initialize(self) -> None:
        """Create the tables and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self._connect("initialize") as db:
            for table_sql in _CREATE_TABLES_SQL:
                await db.execute(table_sql)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("profile_db_initialized", path=str(self._db_path))

    # -- artist entities -------------------------------------------------------

    async def upsert_artist(
        self,
        entity_id: str,
        name: str,
        catalog_id: str | None = None,
        genres: list[str] | None = None,
    ) -> None:
        async with self._connect("upsert_artist") as db:
            await db.execute(
                _UPSERT_ARTIST_SQL, (entity_id, name, catalog_id, json.dumps(genres or []))
            )
            await db.commit()

    async def get_artist(self, entity_id: str) -> ArtistEntity | None:
        async with self._connect("get_artist") as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                f"SELECT {_SELECT_ARTIST_COLUMNS} FROM artists WHERE entity_id = ?",
                (entity_id,),
            )
            row = await cursor.fetchone()
        return _row_to_entity(row) if row else None

    async def list_artists_needing_work(
        self, limit: int, include_built: bool = False
    ) -> list[ArtistEntity]:
        where = "" if include_built else "WHERE lifecycle_state != 'built'"
        async with self._connect("list_artists_needing_work") as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                f"SELECT {_SELECT_ARTIST_COLUMNS} FROM artists {where} "
                "ORDER BY updated_at IS NOT NULL, updated_at, entity_id LIMIT ?",
                (limit,),
            )
            rows = await cursor.fetchall()
        return [_row_to_entity(r) for r in rows]

    # -- aggregate -------------------------------------------------------------

    async def write_profile_content(self, profile: ArtistProfile) -> int | None:
        document = profile.to_document()
        updated_at = _now()
        async with self._connect("write_profile_content") as db:
            await db.execute(
                _WRITE_CONTENT_SQL,
                (
                    profile.entity_id,
                    profile.entity_id,
                    len(profile.track_matrix),
                    profile.target_track_count,
                    json.dumps(document),
                    updated_at,
                ),
            )
            await db.commit()
            cursor = await db.execute(
                "SELECT version, track_count FROM artists WHERE entity_id = ?",
                (profile.entity_id,),
            )
            row = await cursor.fetchone()

        # Confirm the row now reflects what we wrote.
        if row is None or row[1] != len(profile.track_matrix):
            logger.warning("profile_content_unconfirmed", entity_id=profile.entity_id)
            return None
        logger.debug(
            "profile_content_written",
            entity_id=profile.entity_id,
            tracks=row[1],
            version=row[0],
        )
        return int(row[0])

    async def write_lifecycle_state(
        self,
        entity_id: str,
        state: LifecycleState,
        built_at: datetime | None,
        expected_version: int | None = None,
    ) -> bool:
        sql = "UPDATE artists SET lifecycle_state = ?, built_at = ? WHERE entity_id = ?"
        params: list[Any] = [state.value, built_at.isoformat() if built_at else None, entity_id]
        if expected_version is not None:
            sql += " AND version = ?"
            params.append(expected_version)
        async with self._connect("write_lifecycle_state") as db:
            cursor = await db.execute(sql, params)
            await db.commit()
            changed = cursor.rowcount
        return changed > 0

    async def find_built_violations(self, limit: int) -> tuple[int, list[ArtistEntity]]:
        async with self._connect("find_built_violations") as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT COUNT(*) FROM (SELECT 1 FROM artists "
                "WHERE lifecycle_state = 'built' LIMIT ?)",
                (limit,),
            )
            checked = (await cursor.fetchone())[0]
            cursor = await db.execute(
                f"SELECT {_SELECT_ARTIST_COLUMNS} FROM artists "
                f"WHERE lifecycle_state = 'built' AND {_VIOLATION_PREDICATE} "
                "ORDER BY entity_id LIMIT ?",
                (limit,),
            )
            rows = await cursor.fetchall()
        return checked, [_row_to_entity(r) for r in rows]

    async def clear_built_flags(self, entity_ids: list[str]) -> int:
        if not entity_ids:
            return 0
        changed = 0
        async with self._connect("clear_built_flags") as db:
            for entity_id in entity_ids:
                cursor = await db.execute(_CLEAR_BUILT_SQL, (entity_id,))
                changed += cursor.rowcount
            await db.commit()
        logger.info("built_flags_cleared", requested=len(entity_ids), changed=changed)
        return changed

    async def count_by_state(self) -> dict[str, int]:
        counts = {state.value: 0 for state in LifecycleState}
        async with self._connect("count_by_state") as db:
            cursor = await db.execute(
                "SELECT lifecycle_state, COUNT(*) FROM artists GROUP BY lifecycle_state"
            )
            for state, count in await cursor.fetchall():
                counts[state] = count
        return counts

    # -- feature cache ---------------------------------------------------------

    async def get_cached_features(
        self, fingerprint: str | None = None, track_id: str | None = None
    ) -> FeatureVector | None:
        async with self._connect("get_cached_features") as db:
            row = None
            if fingerprint:
                cursor = await db.execute(
                    "SELECT vector_json FROM audio_features WHERE fingerprint = ?",
                    (fingerprint,),
                )
                row = await cursor.fetchone()
            if row is None and track_id:
                cursor = await db.execute(
                    "SELECT vector_json FROM audio_features WHERE track_id = ? "
                    "ORDER BY created_at DESC LIMIT 1",
                    (track_id,),
                )
                row = await cursor.fetchone()
        if row is None:
            return None
        return FeatureVector.model_validate_json(row[0])

    async def put_cached_features(
        self,
        fingerprint: str,
        audio_reference: str,
        vector: FeatureVector,
        track_id: str | None = None,
    ) -> None:
        async with self._connect("put_cached_features") as db:
            await db.execute(
                "INSERT INTO audio_features (fingerprint, track_id, audio_reference, vector_json) "
                "VALUES (?, ?, ?, ?) "
                "ON CONFLICT(fingerprint) DO UPDATE SET "
                "track_id = COALESCE(excluded.track_id, audio_features.track_id), "
                "vector_json = excluded.vector_json",
                (fingerprint, track_id, audio_reference, vector.model_dump_json()),
            )
            await db.commit()

    # -- user profiles / stats -------------------------------------------------

    async def save_user_profile(self, user_id: str, document: dict[str, Any]) -> None:
        async with self._connect("save_user_profile") as db:
            await db.execute(
                "INSERT INTO user_sound_profiles (user_id, profile_json, updated_at) "
                "VALUES (?, ?, ?) "
                "ON CONFLICT(user_id) DO UPDATE SET "
                "profile_json = excluded.profile_json, updated_at = excluded.updated_at",
                (user_id, json.dumps(document), _now()),
            )
            await db.commit()
        logger.info("user_profile_saved", user_id=user_id)

    async def get_user_profile(self, user_id: str) -> dict[str, Any] | None:
        async with self._connect("get_user_profile") as db:
            cursor = await db.execute(
                "SELECT profile_json FROM user_sound_profiles WHERE user_id = ?", (user_id,)
            )
            row = await cursor.fetchone()
        return json.loads(row[0]) if row else None

    async def stats(self) -> dict[str, Any]:
        async with self._connect("stats") as db:
            cursor = await db.execute("SELECT COUNT(*) FROM artists")
            artists = (await cursor.fetchone())[0]
            cursor = await db.execute("SELECT COUNT(*) FROM audio_features")
            features = (await cursor.fetchone())[0]
            cursor = await db.execute("SELECT COUNT(*) FROM user_sound_profiles")
            users = (await cursor.fetchone())[0]
        return {
            "artists": artists,
            "by_state": await self.count_by_state(),
            "cached_features": features,
            "user_profiles": users,
        }

    def get_provider_name(self) -> str:
        return "sqlite"
