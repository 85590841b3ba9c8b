"""
Configuration settings for the Parcel Tracker Backend.

This module handles application configuration using Pydantic settings.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings."""

    # Application
    app_name: str = "Parcel Tracker Backend"
    api_version: str = "v1"
    debug: bool = False
    log_level: str = "INFO"

    # Database Configuration
    database_url: str = "sqlite+aiosqlite:///./parcel_tracker.db"
    db_echo: bool = False
    db_pool_size: int = 5
    db_max_overflow: int = 10

    # Redis Configuration (advisory tracking cache)
    redis_url: str = "redis://localhost:6379/0"
    redis_decode_responses: bool = True
    cache_ttl_seconds: int = 300

    # Polling Configuration
    check_interval_seconds: float = 15 * 60
    polling_enabled: bool = True

    # Status Provider Configuration (mock carrier lookup)
    provider_step_seconds: float = 60
    provider_simulated_delay_seconds: float = 0.1
    provider_timeout_seconds: float = 10
    provider_failure_threshold: int = 5
    provider_reset_timeout_seconds: int = 60

    # Notification Configuration
    notification_webhook_url: Optional[str] = None
    notification_webhook_timeout_seconds: float = 5

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
