"""Configuration management using pydantic-settings."""
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # EuRIS portal
    euris_base_url: str = "https://www.eurisportal.eu"
    euris_user_agent: str = "Signal K EuRIS Plugin"
    upstream_timeout_seconds: float = 30.0
    max_concurrent_requests: int = 10

    # Cache settings
    cache_duration_minutes: int = 60
    notices_cache_minutes: int = 15
    cache_sweep_interval_seconds: Optional[float] = 300.0

    # Operating times are "today" only, cleared daily at this local time (HH:MM)
    schedule_reset_time: str = "00:00"

    # Source feature flags
    enable_locks: bool = True
    enable_bridges: bool = True
    enable_berths: bool = False
    enable_notices: bool = False

    # Query defaults
    default_distance_meters: float = 5000.0
    request_timeout_seconds: float = 30.0

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
