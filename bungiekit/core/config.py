"""
Configuration settings for the BungieKit client SDK.

Uses environment variables (prefixed with BUNGIE_) with sensible defaults
for local development.
"""

import logging
import os
import platform
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def default_cache_dir() -> Path:
    """Platform-appropriate cache directory for the manifest database."""
    system = platform.system()
    if system == "Windows":
        base = Path(os.environ.get("LOCALAPPDATA") or Path.home() / "AppData" / "Local")
    elif system == "Darwin":
        base = Path.home() / "Library" / "Caches"
    else:
        base = Path(os.environ.get("XDG_CACHE_HOME") or Path.home() / ".cache")
    return base / "bungiekit"


class Settings(BaseSettings):
    """SDK settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="BUNGIE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Credentials
    api_key: str = ""
    client_id: str | None = None
    client_secret: str | None = None

    # Endpoints
    base_url: str = "https://www.bungie.net/Platform"
    content_host: str = "https://www.bungie.net"
    authorize_url: str = "https://www.bungie.net/en/OAuth/Authorize"
    user_agent: str = "BungieKit"

    # HTTP
    timeout: float = 30.0
    download_timeout: float = 300.0

    # Retry settings
    max_retries: int = 3
    base_retry_delay: float = 1.0  # Starting delay for exponential backoff
    max_retry_delay: float = 30.0

    # Rate limiting (client side, the API throttles at roughly 25 req/s)
    requests_per_second: int = 20
    requests_per_minute: int = 250

    # Manifest cache
    manifest_dir: Path = Field(default_factory=default_cache_dir)
    manifest_db_name: str = "manifest.sqlite3"
    default_locale: str = "en"

    log_level: str = "WARNING"

    @field_validator("base_url", "content_host", mode="after")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize URLs so paths can be appended with a single slash."""
        return v.rstrip("/")

    @field_validator("log_level", mode="after")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Only accept the standard logging level names."""
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @property
    def has_oauth_credentials(self) -> bool:
        """True when both the OAuth client id and secret are configured."""
        return bool(self.client_id) and bool(self.client_secret)

    @property
    def manifest_db_path(self) -> Path:
        """Full path to the manifest content database."""
        return Path(self.manifest_dir).expanduser() / self.manifest_db_name


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
