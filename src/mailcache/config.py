"""
Configuration management for mailcache.

This module provides configuration loading from environment variables
and TOML configuration files, with type-safe settings classes.
"""

import os
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import InvalidConfigError, MissingConfigError


class StorageSettings(BaseSettings):
    """SQLite storage configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="MAILCACHE_STORAGE_",
        extra="ignore",
    )

    data_dir: str = Field(
        default="~/.mailcache/data",
        description="Per-user data directory holding one store per profile",
    )
    profile: str = Field(default="default", description="User profile name")
    busy_timeout_ms: int = Field(
        default=30000, ge=0, description="Milliseconds to wait on a locked database"
    )
    cache_size_kb: int = Field(
        default=32000, ge=1024, description="Page cache size in KiB"
    )
    mmap_size_bytes: int = Field(
        default=64 * 1024 * 1024, ge=0, description="Memory-mapped I/O size"
    )
    synchronous: str = Field(
        default="NORMAL", description="SQLite synchronous mode"
    )

    @field_validator("profile")
    @classmethod
    def validate_profile(cls, v: str) -> str:
        """Profiles become directory names, so keep them path-safe."""
        v = v.strip()
        if not v or "/" in v or "\\" in v or v in (".", ".."):
            raise ValueError("Profile must be a non-empty plain name")
        return v

    @field_validator("synchronous")
    @classmethod
    def validate_synchronous(cls, v: str) -> str:
        """Validate synchronous mode."""
        valid_modes = ["OFF", "NORMAL", "FULL", "EXTRA"]
        v_upper = v.upper()
        if v_upper not in valid_modes:
            raise ValueError(
                f"Synchronous mode must be one of: {', '.join(valid_modes)}"
            )
        return v_upper

    @property
    def db_path(self) -> Path:
        """Location of the store file for the configured profile."""
        return Path(os.path.expanduser(self.data_dir)) / self.profile / "mailcache.db"


class SearchSettings(BaseSettings):
    """Query engine configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="MAILCACHE_SEARCH_",
        extra="ignore",
    )

    default_limit: Optional[int] = Field(
        default=None,
        ge=1,
        description="Page size when a search gives no limit; unset means uncapped",
    )
    max_limit: int = Field(
        default=1000, ge=1, description="Largest page size a search may request"
    )


class LoggingSettings(BaseSettings):
    """Logging configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="MAILCACHE_LOG_",
        extra="ignore",
    )

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format",
    )
    file: Optional[str] = Field(None, description="Log file path")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of: {', '.join(valid_levels)}")
        return v_upper


class Settings(BaseSettings):
    """Main settings aggregating all configuration."""

    model_config = SettingsConfigDict(
        env_prefix="MAILCACHE_",
        extra="ignore",
    )

    app_name: str = Field(default="mailcache", description="Application name")
    debug: bool = Field(default=False, description="Debug mode")

    # Sub-settings
    storage: StorageSettings = Field(default_factory=StorageSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def from_toml(cls, path: str | Path) -> "Settings":
        """
        Load settings from a TOML configuration file.

        Args:
            path: Path to the TOML configuration file.

        Returns:
            Settings instance with loaded configuration.

        Raises:
            MissingConfigError: If the file does not exist.
            InvalidConfigError: If the file cannot be parsed or holds bad values.
        """
        path = Path(path)
        if not path.exists():
            raise MissingConfigError(str(path))

        try:
            with open(path, "rb") as f:
                config_data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise InvalidConfigError(
                config_key="config_file",
                value=str(path),
                reason=f"Failed to parse TOML: {e}",
            ) from e

        try:
            return cls._from_dict(config_data)
        except ValueError as e:
            raise InvalidConfigError(
                config_key="config_file",
                value=str(path),
                reason=str(e),
            ) from e

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> "Settings":
        """
        Create settings from a dictionary.

        Args:
            data: Configuration dictionary.

        Returns:
            Settings instance.
        """
        # Map TOML sections to settings classes
        settings_kwargs: dict[str, Any] = {}

        if "app" in data:
            settings_kwargs.update(data["app"])

        if "storage" in data:
            settings_kwargs["storage"] = StorageSettings(**data["storage"])

        if "search" in data:
            settings_kwargs["search"] = SearchSettings(**data["search"])

        if "logging" in data:
            settings_kwargs["logging"] = LoggingSettings(**data["logging"])

        return cls(**settings_kwargs)

    def validate_required(self) -> None:
        """
        Validate cross-field constraints.

        Raises:
            InvalidConfigError: If the search limits are inconsistent.
        """
        if (
            self.search.default_limit is not None
            and self.search.default_limit > self.search.max_limit
        ):
            raise InvalidConfigError(
                config_key="MAILCACHE_SEARCH_DEFAULT_LIMIT",
                value=self.search.default_limit,
                reason=f"must not exceed max_limit ({self.search.max_limit})",
            )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings.

    Loads settings from environment variables, or from the TOML file
    named by ``MAILCACHE_CONFIG_FILE`` when it exists. The result is
    cached; use :func:`reload_settings` to pick up changes.

    Returns:
        Settings instance.

    Raises:
        InvalidConfigError: If the environment or the file holds bad values.
    """
    config_file = os.getenv("MAILCACHE_CONFIG_FILE")

    if config_file and Path(config_file).exists():
        settings = Settings.from_toml(config_file)
    else:
        try:
            settings = Settings()
        except ValueError as e:
            raise InvalidConfigError(
                config_key="environment",
                value="MAILCACHE_*",
                reason=str(e),
            ) from e

    settings.validate_required()
    return settings


def reload_settings() -> Settings:
    """
    Reload settings, clearing the cache.

    Returns:
        Fresh Settings instance.
    """
    get_settings.cache_clear()
    return get_settings()
