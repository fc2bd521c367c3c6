"""
Application configuration using Pydantic Settings.

Environment-based infrastructure switching is controlled by the ENVIRONMENT
and CALENDAR_PROVIDER variables.
"""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ===========================================
    # Environment
    # ===========================================
    ENVIRONMENT: Literal["local", "production", "test"] = "local"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # ===========================================
    # Planning
    # ===========================================
    # Used when a user has no timezone stored
    DEFAULT_TIMEZONE: str = "America/Los_Angeles"
    # Default window is today .. today + PLANNING_WINDOW_DAYS
    PLANNING_WINDOW_DAYS: int = 14
    WORK_HOURS_START: int = 9
    DEFAULT_DURATION_MINUTES: int = 60
    EXCLUDE_WEEKENDS: bool = False

    # ===========================================
    # External Calendar
    # ===========================================
    # Calendar provider: "memory" | "google"
    # - memory: in-process calendar (local development, tests)
    # - google: Google Calendar REST API (access token supplied per account)
    CALENDAR_PROVIDER: Literal["memory", "google"] = "memory"
    CALENDAR_MAX_CONCURRENCY: int = 4
    CALENDAR_CALL_TIMEOUT_SECONDS: float = 10.0
    CALENDAR_MAX_RETRIES: int = 3
    CALENDAR_RETRY_BASE_DELAY_SECONDS: float = 0.5

    GOOGLE_CALENDAR_API_BASE: str = "https://www.googleapis.com/calendar/v3"
    GOOGLE_CALENDAR_ID: str = "primary"
    # Treat events on every calendar of the account as busy time
    GOOGLE_READ_ALL_CALENDARS: bool = True

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.ENVIRONMENT == "production"

    @property
    def is_local(self) -> bool:
        """Check if running in local environment."""
        return self.ENVIRONMENT == "local"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Using lru_cache ensures settings are loaded only once.
    """
    return Settings()
