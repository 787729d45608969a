"""
Centralized Settings Configuration

Uses Pydantic Settings to load configuration from environment variables
with validation and type coercion.
"""

from typing import Optional

import pytz
from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str
    db_max_connections: int = 20
    db_stale_timeout: int = 300

    # Resilience
    retry_max_attempts: int = 3
    retry_base_delay: float = 2.0
    retry_max_delay: float = 30.0
    circuit_breaker_threshold: int = 5
    circuit_breaker_timeout: int = 60
    http_timeout: int = 30

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # "json" or "console"
    service_name: str = "trend-league-scoring"

    # Pipeline Auth
    pipeline_api_token: SecretStr

    # Match scheduler
    scheduler_enabled: bool = True
    scheduler_tick_seconds: int = 60  # every check must run at least once a minute
    rescore_interval_minutes: int = 10

    # Score broadcaster pacing
    broadcast_window_minutes: int = 10
    broadcast_min_interval_seconds: float = 15.0

    # Push delivery (falls back to log-only delivery when unset)
    push_webhook_url: Optional[str] = None
    push_webhook_secret: Optional[SecretStr] = None

    # Challenge clock (halftime lands at 16:20 local for 24h games)
    challenge_timezone: str = "Europe/Berlin"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid Python logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return upper_v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format is either json or console."""
        lower_v = v.lower()
        if lower_v not in {"json", "console"}:
            raise ValueError("log_format must be 'json' or 'console'")
        return lower_v

    @field_validator("challenge_timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Halftime and pipeline dates are computed in this zone."""
        if v not in pytz.all_timezones_set:
            raise ValueError(f"challenge_timezone must be an IANA zone name, got {v!r}")
        return v

    @field_validator("scheduler_tick_seconds")
    @classmethod
    def validate_tick(cls, v: int) -> int:
        """Overtime polling needs a tick of one minute or less."""
        if v < 1 or v > 60:
            raise ValueError("scheduler_tick_seconds must be between 1 and 60")
        return v


def get_settings() -> Settings:
    """
    Get application settings.

    This function creates a new Settings instance each time,
    allowing for testing with different configurations.
    """
    return Settings()


# Default settings instance for convenience
# Import this for quick access: from core.settings import settings
settings = Settings()
