"""Configuration management for dashcal."""

from __future__ import annotations

import json
import logging
import os
import zoneinfo
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from .timezone_utils import DEFAULT_TIMEZONE

logger = logging.getLogger(__name__)

# Environment variables holding integer settings -> config key
_INT_SETTINGS: dict[str, str] = {
    "DASHCAL_CACHE_TTL_SECONDS": "cache_ttl_seconds",
    "DASHCAL_FETCH_CONCURRENCY": "fetch_concurrency",
    "DASHCAL_WINDOW_DAYS": "window_days",
    "DASHCAL_MAX_RETRIES": "max_retries",
    "DASHCAL_MAX_OCCURRENCES_PER_RULE": "max_occurrences_per_rule",
}


class ConfigManager:
    """Manages application configuration from environment variables and .env files."""

    def __init__(self, env_file_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            env_file_path: Optional path to .env file (defaults to .env in current directory)
        """
        self.env_file_path = env_file_path or Path.cwd() / ".env"

    def load_env_file(self) -> list[str]:
        """Load .env file and set environment variables.

        Only sets variables that are not already in the environment to avoid
        surprising overrides of user's environment.

        Returns:
            List of environment variable keys that were loaded from .env file
        """
        if not self.env_file_path.exists():
            logger.debug("No .env file found at %s", self.env_file_path)
            return []

        set_keys = []

        try:
            content = self.env_file_path.read_text(encoding="utf-8")
        except OSError:
            logger.debug(
                "Failed to read .env file for defaults (continuing): %s",
                str(self.env_file_path),
                exc_info=True,
            )
            return []

        for raw_line in content.splitlines():
            line = raw_line.strip()

            # Skip empty lines and comments
            if not line or line.startswith("#"):
                continue

            if "=" not in line:
                continue

            key, val = line.split("=", 1)
            key = key.strip()
            val = val.strip().strip('"').strip("'")

            if key and key not in os.environ:
                os.environ[key] = val
                set_keys.append(key)

        if set_keys:
            logger.debug("Loaded .env defaults for keys: %s", ", ".join(set_keys))

        return set_keys

    def build_config_from_env(self) -> dict[str, Any]:
        """Build configuration dictionary from environment variables.

        Recognizes:
        - DASHCAL_ICS_SOURCES -> 'ics_sources' (JSON list of {"name", "url"} objects)
        - DASHCAL_ICS_URL -> 'ics_sources' (single URL, used when DASHCAL_ICS_SOURCES is unset)
        - DASHCAL_CACHE_TTL_SECONDS -> 'cache_ttl_seconds' (int)
        - DASHCAL_FETCH_TIMEOUT_SECONDS -> 'fetch_timeout_seconds' (float)
        - DASHCAL_FETCH_CONCURRENCY -> 'fetch_concurrency' (int)
        - DASHCAL_WINDOW_DAYS -> 'window_days' (int)
        - DASHCAL_MAX_RETRIES -> 'max_retries' (int)
        - DASHCAL_MAX_OCCURRENCES_PER_RULE -> 'max_occurrences_per_rule' (int)
        - DASHCAL_DEFAULT_TIMEZONE -> 'default_timezone'

        Returns:
            Configuration dictionary accepted by CalendarAggregationService.from_config
        """
        cfg: dict[str, Any] = {}

        sources_json = os.environ.get("DASHCAL_ICS_SOURCES")
        if sources_json:
            try:
                sources = json.loads(sources_json)
            except json.JSONDecodeError:
                logger.warning("Invalid DASHCAL_ICS_SOURCES (not JSON); ignoring")
            else:
                if isinstance(sources, list):
                    cfg["ics_sources"] = sources
                else:
                    logger.warning("DASHCAL_ICS_SOURCES must be a JSON list; ignoring")

        ics_url = os.environ.get("DASHCAL_ICS_URL")
        if ics_url and "ics_sources" not in cfg:
            cfg["ics_sources"] = [ics_url]

        for env_key, cfg_key in _INT_SETTINGS.items():
            raw = os.environ.get(env_key)
            if not raw:
                continue
            try:
                cfg[cfg_key] = int(raw)
            except ValueError:
                logger.warning("Invalid %s=%r; ignoring", env_key, raw)

        timeout = os.environ.get("DASHCAL_FETCH_TIMEOUT_SECONDS")
        if timeout:
            try:
                cfg["fetch_timeout_seconds"] = float(timeout)
            except ValueError:
                logger.warning("Invalid DASHCAL_FETCH_TIMEOUT_SECONDS=%r; ignoring", timeout)

        default_tz = os.environ.get("DASHCAL_DEFAULT_TIMEZONE")
        if default_tz:
            cfg["default_timezone"] = default_tz

        return cfg

    def load_full_config(self) -> dict[str, Any]:
        """Load .env file and build configuration from environment.

        This is the main entry point for loading configuration.

        Returns:
            Configuration dictionary
        """
        self.load_env_file()
        return self.build_config_from_env()


def get_default_timezone(fallback: str = DEFAULT_TIMEZONE) -> str:
    """Get default timezone from environment with validation.

    Args:
        fallback: Fallback timezone if not configured or invalid

    Returns:
        Valid IANA timezone string
    """
    timezone = os.environ.get("DASHCAL_DEFAULT_TIMEZONE", fallback)

    try:
        zoneinfo.ZoneInfo(timezone)
        return timezone
    except (zoneinfo.ZoneInfoNotFoundError, ValueError):
        logger.warning(
            "Invalid timezone %r, falling back to %r", timezone, fallback, exc_info=True
        )
        return fallback


def get_config_value(config: Any, key: str, default: Any = None) -> Any:
    """Get configuration value supporting both dict and dataclass-like objects.

    Args:
        config: Configuration object (dict or object with attributes)
        key: Configuration key to retrieve
        default: Default value if key not found

    Returns:
        Configuration value or default
    """
    if isinstance(config, dict):
        return config.get(key, default)
    return getattr(config, key, default)


@dataclass
class EngineSettings:
    """Typed settings for the aggregation engine.

    Consolidates fetch, expansion and cache settings with explicit defaults.
    """

    default_timezone: str = DEFAULT_TIMEZONE
    cache_ttl_seconds: int = 300
    fetch_timeout_seconds: float = 10.0
    fetch_concurrency: Optional[int] = None
    window_days: int = 14
    max_retries: int = 1
    retry_backoff_factor: float = 1.5
    max_occurrences_per_rule: int = 500

    @classmethod
    def from_config(cls, config: Any) -> "EngineSettings":
        """Extract engine settings from a config dict or settings object.

        Args:
            config: Configuration mapping or object with matching attributes

        Returns:
            EngineSettings with values from config or defaults
        """
        concurrency = get_config_value(config, "fetch_concurrency", None)
        return cls(
            default_timezone=str(
                get_config_value(config, "default_timezone", None) or get_default_timezone()
            ),
            cache_ttl_seconds=max(0, int(get_config_value(config, "cache_ttl_seconds", 300))),
            fetch_timeout_seconds=float(get_config_value(config, "fetch_timeout_seconds", 10.0)),
            fetch_concurrency=int(concurrency) if concurrency else None,
            window_days=max(1, int(get_config_value(config, "window_days", 14))),
            max_retries=max(0, int(get_config_value(config, "max_retries", 1))),
            retry_backoff_factor=float(get_config_value(config, "retry_backoff_factor", 1.5)),
            max_occurrences_per_rule=max(
                1, int(get_config_value(config, "max_occurrences_per_rule", 500))
            ),
        )
