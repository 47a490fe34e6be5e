"""Consolidated settings management for Storylines.

This module provides a single source of truth for configuration through
the Settings class. It consolidates:
- Environment variables (STORYLINES_*, GEMINI_API_KEY), including a .env file
- Config files (~/.storylines/config.yaml, .storylines/config.yaml)
- CLI flags (passed at runtime)
- Defaults (in code)

Configuration hierarchy (lowest to highest priority):
1. Defaults (hardcoded)
2. Config file (YAML/JSON)
3. Environment variables
4. CLI flags

Usage:
    from storylines.core.settings import get_settings

    settings = get_settings()
    print(settings.generative.default_model)
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar, Optional

import yaml
from dotenv import load_dotenv

from storylines.core import constants
from storylines.core.errors import InvalidConfigError, MissingConfigError

logger = logging.getLogger(__name__)


@dataclass
class GenerativeSettings:
    """Settings for the Gemini generative service."""

    api_key: str = ""
    default_model: str = "gemini-2.5-flash"
    connection_model: str = "gemini-2.5-pro"
    grid_model: str = "gemini-2.5-pro"
    theme_model: str = "gemini-2.5-flash-lite"
    connection_thinking_budget: int = 32768

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def to_dict(self, mask_keys: bool = True) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "api_key": "***" if mask_keys and self.api_key else self.api_key,
            "default_model": self.default_model,
            "connection_model": self.connection_model,
            "grid_model": self.grid_model,
            "theme_model": self.theme_model,
            "connection_thinking_budget": self.connection_thinking_budget,
        }


@dataclass
class BibliographicSettings:
    """Settings for the Open Library lookup client."""

    base_url: str = "https://openlibrary.org"
    covers_url: str = "https://covers.openlibrary.org"
    timeout: float = 15.0
    throttle_interval: float = constants.THROTTLE_INTERVAL
    network_retry_delay: float = constants.NETWORK_RETRY_DELAY

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "base_url": self.base_url,
            "covers_url": self.covers_url,
            "timeout": self.timeout,
            "throttle_interval": self.throttle_interval,
            "network_retry_delay": self.network_retry_delay,
        }


@dataclass
class RetrySettings:
    """Backoff policy shared by every upstream call."""

    attempts: int = constants.RETRY_ATTEMPTS
    initial_delay: float = constants.RETRY_INITIAL_DELAY
    max_delay: float = constants.RETRY_MAX_DELAY

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempts": self.attempts,
            "initial_delay": self.initial_delay,
            "max_delay": self.max_delay,
        }


@dataclass
class RateLimitSettings:
    """Client-side rate limits (calls per window)."""

    search_max: int = constants.SEARCH_RATE_LIMIT
    expansion_max: int = constants.EXPANSION_RATE_LIMIT
    api_max: int = constants.API_RATE_LIMIT
    window: float = constants.RATE_LIMIT_WINDOW

    def to_dict(self) -> dict[str, Any]:
        return {
            "search_max": self.search_max,
            "expansion_max": self.expansion_max,
            "api_max": self.api_max,
            "window": self.window,
        }


@dataclass
class Settings:
    """Consolidated settings for Storylines.

    Attributes:
        debug: Enable debug mode
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        data_dir: Directory holding bootstrap and journey documents
        status_dismiss_delay: Seconds before a status caption hides
        generative: Gemini settings
        bibliographic: Open Library settings
        retry: Backoff settings
        rate_limits: Client-side limiter settings
    """

    debug: bool = False
    log_level: str = "INFO"
    data_dir: str = "data"
    status_dismiss_delay: float = constants.STATUS_DISMISS_DELAY

    generative: GenerativeSettings = field(default_factory=GenerativeSettings)
    bibliographic: BibliographicSettings = field(default_factory=BibliographicSettings)
    retry: RetrySettings = field(default_factory=RetrySettings)
    rate_limits: RateLimitSettings = field(default_factory=RateLimitSettings)

    # Metadata (not persisted)
    _source: str = field(default="defaults", repr=False)
    _overrides: dict[str, str] = field(default_factory=dict, repr=False)
    _config_path: Optional[Path] = field(default=None, repr=False)

    _instance: ClassVar[Optional[Settings]] = None

    # ==========================================================================
    # Loading methods
    # ==========================================================================

    @classmethod
    def load(
        cls,
        config_path: Optional[Path] = None,
        cli_overrides: Optional[dict[str, Any]] = None,
        reset_singleton: bool = False,
    ) -> Settings:
        """Load settings from all sources.

        Args:
            config_path: Explicit path to config file
            cli_overrides: CLI flag overrides (highest priority)
            reset_singleton: Force reload even if cached

        Returns:
            Settings instance
        """
        if cls._instance is not None and not reset_singleton and not cli_overrides:
            return cls._instance

        load_dotenv()
        settings = cls()
        settings._apply_config_file(config_path)
        settings._apply_environment()
        if cli_overrides:
            settings._apply_cli_overrides(cli_overrides)
        settings._validate()

        cls._instance = settings
        return settings

    @classmethod
    def reset(cls) -> None:
        """Reset the singleton instance (useful for testing)."""
        cls._instance = None

    def _apply_config_file(self, config_path: Optional[Path] = None) -> None:
        """Apply settings from config file."""
        if config_path is None:
            config_path = self._find_config_file()

        if config_path is None or not config_path.exists():
            return

        try:
            with open(config_path, encoding="utf-8") as f:
                if config_path.suffix in (".yaml", ".yml"):
                    data = yaml.safe_load(f) or {}
                else:
                    data = json.load(f)
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.warning("Failed to load config from %s: %s", config_path, e)
            return

        self._apply_dict(data, source=f"file:{config_path}")
        self._config_path = config_path
        self._source = str(config_path)

    def _apply_environment(self) -> None:
        """Apply environment variable overrides."""
        self._apply_env("STORYLINES_DEBUG", "debug", type_=bool)
        self._apply_env("STORYLINES_LOG_LEVEL", "log_level")
        self._apply_env("STORYLINES_DATA_DIR", "data_dir")
        self._apply_env("STORYLINES_STATUS_DISMISS_DELAY", "status_dismiss_delay", type_=float)

        self._apply_env("GEMINI_API_KEY", "generative.api_key")
        self._apply_env("STORYLINES_MODEL", "generative.default_model")
        self._apply_env("STORYLINES_CONNECTION_MODEL", "generative.connection_model")
        self._apply_env("STORYLINES_GRID_MODEL", "generative.grid_model")
        self._apply_env("STORYLINES_THEME_MODEL", "generative.theme_model")

        self._apply_env("STORYLINES_OPENLIBRARY_URL", "bibliographic.base_url")
        self._apply_env("STORYLINES_OPENLIBRARY_TIMEOUT", "bibliographic.timeout", type_=float)
        self._apply_env("STORYLINES_THROTTLE_INTERVAL", "bibliographic.throttle_interval", type_=float)

        self._apply_env("STORYLINES_RETRY_ATTEMPTS", "retry.attempts", type_=int)
        self._apply_env("STORYLINES_RETRY_INITIAL_DELAY", "retry.initial_delay", type_=float)
        self._apply_env("STORYLINES_RETRY_MAX_DELAY", "retry.max_delay", type_=float)

        self._apply_env("STORYLINES_SEARCH_RATE_LIMIT", "rate_limits.search_max", type_=int)
        self._apply_env("STORYLINES_EXPANSION_RATE_LIMIT", "rate_limits.expansion_max", type_=int)
        self._apply_env("STORYLINES_API_RATE_LIMIT", "rate_limits.api_max", type_=int)

    def _apply_cli_overrides(self, overrides: dict[str, Any]) -> None:
        """Apply CLI flag overrides."""
        for key, value in overrides.items():
            if value is not None:
                self._set_nested(key, value)
                self._overrides[key] = "cli"

    def _apply_dict(self, data: dict[str, Any], source: str = "dict") -> None:
        """Apply dictionary configuration."""
        for key in ["debug", "log_level", "data_dir", "status_dismiss_delay"]:
            if key in data:
                setattr(self, key, data[key])
                self._overrides[key] = source

        for section in ["generative", "bibliographic", "retry", "rate_limits"]:
            section_data = data.get(section)
            if not isinstance(section_data, dict):
                continue
            container = getattr(self, section)
            for key, value in section_data.items():
                if hasattr(container, key):
                    setattr(container, key, value)
            self._overrides[section] = source

    def _apply_env(self, env_var: str, setting_path: str, type_: type = str) -> None:
        """Apply single environment variable."""
        value = os.getenv(env_var)
        if value is None:
            return
        try:
            if type_ is bool:
                value = _parse_bool(value)
            elif type_ is int:
                value = int(value)
            elif type_ is float:
                value = float(value)
        except ValueError:
            raise InvalidConfigError(env_var, value, f"must be of type {type_.__name__}")
        self._set_nested(setting_path, value)
        self._overrides[setting_path] = "env"

    def _set_nested(self, path: str, value: Any) -> None:
        """Set a nested configuration value using dot notation."""
        parts = path.split(".")
        if len(parts) == 1:
            if hasattr(self, path):
                setattr(self, path, value)
        elif len(parts) == 2:
            container = getattr(self, parts[0], None)
            if container is not None and hasattr(container, parts[1]):
                setattr(container, parts[1], value)

    def _find_config_file(self) -> Optional[Path]:
        """Find configuration file in standard locations."""
        locations = [
            Path(".storylines/config.yaml"),
            Path(".storylines/config.yml"),
            Path(".storylines/config.json"),
            Path.home() / ".storylines" / "config.yaml",
            Path.home() / ".storylines" / "config.yml",
            Path.home() / ".storylines" / "config.json",
        ]
        for path in locations:
            if path.exists():
                return path
        return None

    def _validate(self) -> None:
        if self.retry.attempts < 1:
            raise InvalidConfigError("retry.attempts", self.retry.attempts, "must be at least 1")
        if self.retry.initial_delay < 0 or self.retry.max_delay < 0:
            raise InvalidConfigError("retry", self.retry.to_dict(), "delays must be non-negative")
        if self.bibliographic.throttle_interval < 0:
            raise InvalidConfigError(
                "bibliographic.throttle_interval", self.bibliographic.throttle_interval, "must be non-negative"
            )
        for name in ("search_max", "expansion_max", "api_max"):
            if getattr(self.rate_limits, name) < 1:
                raise InvalidConfigError(f"rate_limits.{name}", getattr(self.rate_limits, name), "must be positive")

    # ==========================================================================
    # Accessor methods
    # ==========================================================================

    def require_api_key(self) -> str:
        """Return the Gemini API key or raise MissingConfigError."""
        if not self.generative.api_key:
            raise MissingConfigError("GEMINI_API_KEY")
        return self.generative.api_key

    def get_source(self, key: str) -> str:
        """Return where a setting came from (defaults, env, cli, file:...)."""
        return self._overrides.get(key, "defaults")

    def to_dict(self, mask_keys: bool = True) -> dict[str, Any]:
        """Convert settings to dictionary."""
        return {
            "debug": self.debug,
            "log_level": self.log_level,
            "data_dir": self.data_dir,
            "status_dismiss_delay": self.status_dismiss_delay,
            "generative": self.generative.to_dict(mask_keys=mask_keys),
            "bibliographic": self.bibliographic.to_dict(),
            "retry": self.retry.to_dict(),
            "rate_limits": self.rate_limits.to_dict(),
        }


# =============================================================================
# Helper functions
# =============================================================================


def _parse_bool(value: str) -> bool:
    """Parse boolean from string."""
    return value.lower() in ("true", "1", "yes", "on")


def get_settings(cli_overrides: Optional[dict[str, Any]] = None, reset: bool = False) -> Settings:
    """Get the global Settings instance.

    Args:
        cli_overrides: CLI flag overrides (forces reload if provided)
        reset: Force reload of settings

    Returns:
        Settings instance
    """
    return Settings.load(cli_overrides=cli_overrides, reset_singleton=reset)
