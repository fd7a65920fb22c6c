"""Configuration management using pydantic-settings."""
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Cache defaults (seconds)
    cache_stale_time_seconds: float = 5 * 60
    cache_time_seconds: float = 30 * 60
    cache_revalidate_on_focus: bool = True
    cache_revalidate_on_reconnect: bool = True
    cache_revalidate_interval_seconds: float = 0
    cache_retry: int = 3
    cache_retry_delay_seconds: float = 1.0
    cache_fetch_timeout_seconds: Optional[float] = 30.0

    # Upstream API used by the HTTP fetcher
    api_base_url: str = "http://localhost:8080/api"
    api_token: Optional[str] = None

    # Rate limiting
    max_concurrent_requests: int = 10

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
