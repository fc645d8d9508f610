"""Configuration settings for the doorlog backend."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Google Sheets. Optional at startup; requests that need the store fail
    # with a configuration error instead.
    google_credentials: str | None = None  # Service-account JSON, as a string
    spreadsheet_id: str | None = None
    sheets_timeout: float = 10.0
    # USER_ENTERED lets the sheet normalise dates; RAW stores text as sent
    value_input_option: str = "USER_ENTERED"

    # Tab names
    event_log_sheet: str = "Sheet1"
    bucket_sheet: str = "Daily Stats"
    position_sheet: str = "User Positions"
    not_home_sheet: str = "Not Home"

    # App
    debug: bool = False
    log_level: str = "INFO"
    rate_limit: str = "120/minute"
    # Only these peers may set X-Forwarded-For
    trusted_proxy_cidrs: list[str] = [
        "10.0.0.0/8",
        "172.16.0.0/12",
        "192.168.0.0/16",
        "127.0.0.0/8",
        "::1/128",
    ]
    # CORS: Allowed origins for cross-origin requests
    cors_origins: list[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra env vars not in model


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
