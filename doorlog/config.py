"""Configuration settings for the doorlog client."""

from functools import lru_cache
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientSettings(BaseSettings):
    """Client settings loaded from DOORLOG_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DOORLOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server
    api_url: str | None = None  # e.g. https://doorlog.example.com
    timeout: float = 10.0  # Seconds; a timeout is a transient failure

    # Identity: opaque string, generated and persisted when not set
    user: str | None = None

    # Local storage
    home: Path = Path.home() / ".doorlog"

    # Events
    interval_minutes: int = 30

    # Retry backoff while online (seconds)
    backoff_base: float = 2.0
    backoff_max: float = 300.0

    # Weather enrichment (disabled unless both coordinates are set)
    latitude: float | None = None
    longitude: float | None = None
    weather_url: str = "https://api.open-meteo.com/v1/forecast"

    @field_validator("api_url", mode="after")
    @classmethod
    def strip_api_url(cls, v: str | None) -> str | None:
        v = (v or "").strip().rstrip("/")
        return v or None

    @field_validator("interval_minutes", mode="after")
    @classmethod
    def check_interval(cls, v: int) -> int:
        if v <= 0 or v > 1440:
            raise ValueError("interval_minutes must be between 1 and 1440")
        if (v < 60 and 60 % v) or (v >= 60 and (v % 60 or 1440 % v)):
            raise ValueError("interval_minutes must divide an hour or a day in whole hours")
        return v

    @property
    def db_path(self) -> Path:
        return self.home / "doorlog.db"


@lru_cache
def get_settings() -> ClientSettings:
    """Get cached settings instance."""
    return ClientSettings()
