"""Configuration system for offplanmap.

Uses pydantic-settings to load configuration from environment variables
and .env files with defaults tuned for the Dubai off-plan property map.
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables or .env file.
    Environment variables are prefixed with OFFPLANMAP_ (e.g., OFFPLANMAP_BACKEND_URL).
    """

    model_config = SettingsConfigDict(
        env_prefix="OFFPLANMAP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Backend settings
    backend_url: str = Field(
        default="http://localhost:5000",
        description="Primary property backend",
    )
    fallback_backend_url: str = Field(
        default="https://smart-off-plan-backend-436741085428.europe-west1.run.app",
        description="Backend tried only when the primary is unreachable",
    )
    request_timeout: float = Field(default=30.0, gt=0)
    map_endpoint: str = Field(default="/api/properties/batch-100")
    list_endpoint: str = Field(default="/api/properties")
    map_page_size: int = Field(default=100, ge=1)
    list_page_size: int = Field(default=12, ge=1)

    # Cache settings
    max_cache_size: int = Field(
        default=1000,
        ge=1,
        description="Hard cap on records held per slice",
    )
    stale_time_hours: float = Field(
        default=8,
        gt=0,
        description="Hours a fetched page sequence stays fresh",
    )
    gc_time_hours: float = Field(
        default=12,
        gt=0,
        description="Hours of inactivity before a page sequence is dropped",
    )
    max_retries: int = Field(default=2, ge=0)
    retry_delay: float = Field(default=1.0, ge=0)

    # Durable storage
    cache_file: Path = Field(
        default=Path.home() / ".offplanmap" / "cache.json",
        description="JSON file standing in for browser local storage",
    )
    storage_key: str = Field(default="offplanmap-query-cache")

    # Timers (seconds)
    persist_interval: float = Field(default=300, gt=0)
    optimize_interval: float = Field(default=60, gt=0)
    performance_interval: float = Field(default=30, gt=0)
    leak_check_interval: float = Field(default=60, gt=0)

    # Map rendering
    chunk_size: int = Field(default=50, ge=1)
    chunk_delay: float = Field(default=0.01, ge=0)
    large_set_warning: int = Field(default=500, ge=1)
    max_cluster_radius: int = Field(default=50, ge=1, description="Pixels")
    disable_clustering_at_zoom: int = Field(default=18, ge=0)
    default_latitude: float = Field(default=25.2048, ge=-90, le=90)
    default_longitude: float = Field(default=55.2708, ge=-180, le=180)

    # Performance thresholds
    heap_percent_threshold: float = Field(default=80.0)
    heap_mb_threshold: float = Field(default=150.0)
    heap_limit_mb: float = Field(
        default=4096.0,
        gt=0,
        description="Reported heap limit when the runtime does not expose one",
    )
    records_threshold: int = Field(default=1000)
    render_time_threshold: float = Field(default=5.0, description="Seconds")
    api_calls_threshold: int = Field(default=50)
    leak_increase_mb: float = Field(default=20.0)

    @property
    def stale_time_seconds(self) -> float:
        return self.stale_time_hours * 3600

    @property
    def gc_time_seconds(self) -> float:
        return self.gc_time_hours * 3600


# Singleton instance for easy import
config = Settings()
