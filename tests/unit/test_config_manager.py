"""Unit tests for dashcal.config_manager."""

import json
import os
from pathlib import Path

import pytest

from dashcal.config_manager import (
    ConfigManager,
    EngineSettings,
    get_config_value,
    get_default_timezone,
)

pytestmark = [pytest.mark.unit, pytest.mark.fast]


class TestBuildConfigFromEnv:
    """Tests for ConfigManager.build_config_from_env."""

    def test_build_config_when_sources_json_then_parsed(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """DASHCAL_ICS_SOURCES is parsed as a JSON list."""
        sources = [{"name": "Work", "url": "https://example.com/work.ics"}]
        monkeypatch.setenv("DASHCAL_ICS_SOURCES", json.dumps(sources))
        monkeypatch.setenv("DASHCAL_ICS_URL", "https://example.com/ignored.ics")

        cfg = ConfigManager(Path("/nonexistent/.env")).build_config_from_env()

        assert cfg["ics_sources"] == sources

    def test_build_config_when_only_single_url_then_one_source(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """DASHCAL_ICS_URL is the single-source fallback."""
        monkeypatch.setenv("DASHCAL_ICS_URL", "https://example.com/cal.ics")
        cfg = ConfigManager(Path("/nonexistent/.env")).build_config_from_env()
        assert cfg["ics_sources"] == ["https://example.com/cal.ics"]

    def test_build_config_when_sources_not_json_then_ignored(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Malformed JSON is logged and ignored."""
        monkeypatch.setenv("DASHCAL_ICS_SOURCES", "[not json")
        cfg = ConfigManager(Path("/nonexistent/.env")).build_config_from_env()
        assert "ics_sources" not in cfg

    def test_build_config_when_numeric_values_then_typed(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Numeric settings are converted; invalid ones are skipped."""
        monkeypatch.setenv("DASHCAL_CACHE_TTL_SECONDS", "60")
        monkeypatch.setenv("DASHCAL_WINDOW_DAYS", "seven")
        monkeypatch.setenv("DASHCAL_FETCH_TIMEOUT_SECONDS", "2.5")
        monkeypatch.setenv("DASHCAL_DEFAULT_TIMEZONE", "Europe/London")

        cfg = ConfigManager(Path("/nonexistent/.env")).build_config_from_env()

        assert cfg["cache_ttl_seconds"] == 60
        assert "window_days" not in cfg
        assert cfg["fetch_timeout_seconds"] == 2.5
        assert cfg["default_timezone"] == "Europe/London"


class TestLoadEnvFile:
    """Tests for ConfigManager.load_env_file."""

    def test_load_env_file_when_key_already_set_then_not_overridden(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Existing environment variables win over .env values."""
        env_file = tmp_path / ".env"
        env_file.write_text(
            "# comment\nDASHCAL_EXISTING=from-file\nDASHCAL_NEW='quoted'\nnot a pair\n",
            encoding="utf-8",
        )
        monkeypatch.setenv("DASHCAL_EXISTING", "from-env")
        # Registered with monkeypatch so the value loaded from the file is removed afterwards
        monkeypatch.setenv("DASHCAL_NEW", "placeholder")
        monkeypatch.delenv("DASHCAL_NEW")

        loaded = ConfigManager(env_file).load_env_file()

        assert loaded == ["DASHCAL_NEW"]
        assert os.environ["DASHCAL_EXISTING"] == "from-env"
        assert os.environ["DASHCAL_NEW"] == "quoted"

    def test_load_env_file_when_missing_then_empty(self, tmp_path: Path) -> None:
        """A missing .env file is not an error."""
        assert ConfigManager(tmp_path / "missing.env").load_env_file() == []


class TestEngineSettings:
    """Tests for EngineSettings.from_config."""

    def test_from_config_when_empty_then_defaults(self) -> None:
        """Empty config yields documented defaults."""
        settings = EngineSettings.from_config({})
        assert settings.cache_ttl_seconds == 300
        assert settings.window_days == 14
        assert settings.fetch_concurrency is None
        assert settings.max_occurrences_per_rule == 500
        assert settings.default_timezone == "America/Los_Angeles"

    def test_from_config_when_out_of_range_then_clamped(self) -> None:
        """Negative and zero values are clamped to sane minimums."""
        settings = EngineSettings.from_config(
            {"cache_ttl_seconds": -5, "window_days": 0, "max_retries": -1, "fetch_concurrency": 0}
        )
        assert settings.cache_ttl_seconds == 0
        assert settings.window_days == 1
        assert settings.max_retries == 0
        assert settings.fetch_concurrency is None


def test_get_default_timezone_when_invalid_then_fallback(monkeypatch: pytest.MonkeyPatch) -> None:
    """Invalid DASHCAL_DEFAULT_TIMEZONE falls back."""
    monkeypatch.setenv("DASHCAL_DEFAULT_TIMEZONE", "Invalid/Zone")
    assert get_default_timezone("UTC") == "UTC"


def test_get_config_value_when_object_then_reads_attribute() -> None:
    """Works for dicts and attribute objects."""

    class _Cfg:
        window_days = 7

    assert get_config_value({"window_days": 3}, "window_days") == 3
    assert get_config_value(_Cfg(), "window_days") == 7
    assert get_config_value(_Cfg(), "missing", "x") == "x"
