"""Unit tests for settings, the YAML loader and the tuning models."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from src.config.loader import _deep_merge, load_config
from src.config.settings import Settings
from src.config.tuning import (
    BatchConfig,
    LifecycleConfig,
    ResolutionConfig,
    StageConfig,
    build_tuning,
)
from src.models.resolution import ResolutionStrategy


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


class TestSettings:
    def test_markets_are_normalised(self) -> None:
        assert _settings(spotify_preview_markets="us, gb,US,,de").get_markets() == ["US", "GB", "DE"]

    def test_available_catalogs_follow_credentials(self) -> None:
        settings = _settings(
            spotify_client_id="id",
            spotify_client_secret="secret",
            soundcloud_client_id="",
            youtube_api_key="key",
            bandcamp_enabled=False,
        )
        assert settings.get_available_catalogs() == ["spotify", "itunes", "deezer", "youtube"]

    def test_missing_spotify_secret_drops_primary(self) -> None:
        settings = _settings(spotify_client_id="id", spotify_client_secret="")
        assert "spotify" not in settings.get_available_catalogs()


class TestLoadConfig:
    def test_yaml_merged_with_env_overrides(self, tmp_path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("pipeline:\n  round1_top: 7\nresolution:\n  max_attempts: 50\n")

        config = load_config(str(path), settings=_settings(spotify_preview_markets="SE", app_port=9000))

        assert config["pipeline"]["round1_top"] == 7
        assert config["resolution"] == {"max_attempts": 50, "markets": ["SE"]}
        assert config["app"]["port"] == 9000

    def test_missing_file_yields_env_only(self, tmp_path) -> None:
        config = load_config(str(tmp_path / "absent.yaml"), settings=_settings())
        assert "pipeline" not in config
        assert config["store"]["db_path"] == "data/profiles.db"

    def test_deep_merge(self) -> None:
        base = {"pipeline": {"round1_top": 5}, "x": 1}
        _deep_merge(base, {"pipeline": {"fast_track_delay": 0.1}, "x": {"y": 2}})
        assert base == {"pipeline": {"round1_top": 5, "fast_track_delay": 0.1}, "x": {"y": 2}}


class TestTuning:
    def test_defaults_from_empty_config(self) -> None:
        tuning = build_tuning({})
        assert tuning["stage"] == StageConfig()
        assert tuning["resolution"].default_strategy is ResolutionStrategy.BALANCED
        assert isinstance(tuning["lifecycle"], LifecycleConfig)
        assert isinstance(tuning["batch"], BatchConfig)

    def test_sections_are_applied(self) -> None:
        tuning = build_tuning({"pipeline": {"round1_top": 7, "round1_recent": 5}, "batch": {"concurrency": 2}})
        assert tuning["stage"].round1_capacity == 12
        assert tuning["batch"].concurrency == 2

    def test_attempt_budget(self) -> None:
        config = ResolutionConfig(max_attempts=120, fast_max_attempts=20)
        assert config.attempt_budget(fast_mode=False) == 120
        assert config.attempt_budget(fast_mode=True) == 20
        assert config.attempt_budget(fast_mode=True, override=7) == 7
        assert config.attempt_budget(fast_mode=False, override=0) == 120

    def test_invalid_values_rejected(self) -> None:
        with pytest.raises(ValidationError):
            StageConfig(min_round1_success_rate=1.5)

    def test_models_are_frozen(self) -> None:
        config = StageConfig()
        with pytest.raises(ValidationError):
            config.round1_top = 9

    def test_shipped_yaml_matches_defaults(self) -> None:
        path = Path(__file__).resolve().parents[2] / "config" / "config.yaml"
        config = load_config(str(path), settings=_settings())
        tuning = build_tuning(config)
        assert tuning["stage"] == StageConfig()
        assert tuning["resolution"].max_attempts == 120
