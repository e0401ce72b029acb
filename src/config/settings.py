"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# Values are read from two sources (in priority order):
#
#   1. **Environment variables** - e.g., SPOTIFY_CLIENT_ID=abc123
#   2. **.env file** - key=value lines in the project root .env file
#
# Field ``spotify_client_id`` maps to env var ``SPOTIFY_CLIENT_ID``.
# An empty credential means "not configured": main.py still builds the
# adapter, but ``is_available()`` reports False and the resolution engine
# skips it.
#
# Pipeline tuning (round sizes, gate thresholds, delays) lives in
# config/config.yaml and is loaded by src.config.loader.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """SoundMatrix application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Primary catalog (track listing + preview recovery) ===
    spotify_client_id: str = ""
    spotify_client_secret: str = ""
    # Comma-separated market codes tried, in order, during preview recovery.
    spotify_preview_markets: str = "US,GB,DE,SE,CA"

    # === Alternative / community / aggregator catalogs ===
    itunes_countries: str = "US"
    soundcloud_client_id: str = ""
    youtube_api_key: str = ""
    bandcamp_enabled: bool = True

    # === Feature extraction collaborator ===
    feature_extractor_url: str = "http://localhost:8088"
    feature_extractor_timeout: float = 60.0
    feature_cache_ttl: int = 86400
    feature_cache_size: int = 5000

    # === Document store ===
    profile_db_path: str = "data/profiles.db"

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    def get_markets(self) -> list[str]:
        """Return the configured preview-recovery markets, upper-cased and de-duplicated."""
        return _split_codes(self.spotify_preview_markets)

    def get_itunes_countries(self) -> list[str]:
        return _split_codes(self.itunes_countries)

    def get_available_catalogs(self) -> list[str]:
        """Return the catalog adapters whose credentials are configured."""
        catalogs: list[str] = ["itunes", "deezer"]
        if self.spotify_client_id and self.spotify_client_secret:
            catalogs.insert(0, "spotify")
        if self.soundcloud_client_id:
            catalogs.append("soundcloud")
        if self.youtube_api_key:
            catalogs.append("youtube")
        if self.bandcamp_enabled:
            catalogs.append("bandcamp")
        return catalogs


def _split_codes(raw: str) -> list[str]:
    seen: list[str] = []
    for part in raw.split(","):
        code = part.strip().upper()
        if code and code not in seen:
            seen.append(code)
    return seen
