"""Configuration management using pydantic-settings.

Provides validated configuration with support for:
- JSON config file (config.json)
- Environment overrides prefixed with FILAMENT_
- Tuning blocks for the username cache and the media preview scheduler
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class UsernameCacheConfig(BaseModel):
    """Tuning for the username resolution cache."""

    ttl_ms: int = Field(default=5 * 60 * 1000, gt=0)
    negative_ttl_ms: int = Field(default=30 * 1000, gt=0)
    capacity: int = Field(default=2048, gt=0)
    batch_size: int = Field(default=32, gt=0)


class MediaPreviewConfig(BaseModel):
    """Tuning for the media preview scheduler."""

    max_preview_bytes: int = Field(default=25 * 1024 * 1024, gt=0)
    max_retries: int = Field(default=2, ge=0)
    initial_delay_ms: float = Field(default=75.0, ge=0)
    retry_base_ms: float = Field(default=250.0, gt=0)
    retry_growth_factor: float = Field(default=1.5, ge=1.0)
    retry_cap_ms: float = Field(default=10_000.0, gt=0)


class SyncSettings(BaseSettings):
    """Client sync settings with validation.

    Settings are loaded from a JSON config file (config.json); any field can
    be overridden from the environment, e.g. ``FILAMENT_ACCESS_TOKEN``.
    """

    api_base_url: str = "http://localhost:3000"
    gateway_url: str = "ws://localhost:3000/gateway/ws"
    access_token: str = ""
    database_url: str = "sqlite+aiosqlite:///filament_snapshot.db"
    request_timeout: float = Field(default=30.0, gt=0)

    username_cache: UsernameCacheConfig = UsernameCacheConfig()
    media_preview: MediaPreviewConfig = MediaPreviewConfig()

    model_config = SettingsConfigDict(
        env_prefix="FILAMENT_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    @field_validator("api_base_url", "gateway_url", mode="after")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize base URLs so paths can be appended verbatim."""
        return v.rstrip("/")

    @classmethod
    def from_json(cls, path: str | Path = "config.json") -> "SyncSettings":
        """Load settings from a JSON config file.

        Args:
            path: Path to the JSON config file

        Returns:
            SyncSettings instance with validated configuration
        """
        config_path = Path(path)
        if config_path.exists():
            with open(config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return cls(**data)
        return cls()


@lru_cache
def get_settings(config_path: str = "config.json") -> SyncSettings:
    """Get cached sync settings.

    Args:
        config_path: Path to JSON config file (default: config.json)

    Returns:
        Cached SyncSettings instance
    """
    return SyncSettings.from_json(config_path)


def load_config(path: str | Path = "config.json") -> SyncSettings:
    """Load configuration from an explicit path, dropping any cached copy."""
    get_settings.cache_clear()
    return SyncSettings.from_json(path)
