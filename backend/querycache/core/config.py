"""Application configuration using Pydantic-settings."""

from typing import Optional, List
from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # API Settings
    api_title: str = Field(default="QueryCache API", description="API title")
    api_description: str = Field(
        default="Search result cache and history engine",
        description="API description"
    )
    api_version: str = Field(default="0.1.0", description="API version")
    debug: bool = Field(default=False, description="Debug mode")

    # CORS Settings
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="CORS allowed origins"
    )
    cors_allow_credentials: bool = Field(default=True, description="Allow credentials")
    cors_allow_methods: List[str] = Field(default=["*"], description="Allowed methods")
    cors_allow_headers: List[str] = Field(default=["*"], description="Allowed headers")

    # Database Settings
    database_url: str = Field(
        default="sqlite:///./querycache.db",
        description="Database connection URL"
    )
    database_echo: bool = Field(default=False, description="SQLAlchemy echo SQL")

    # Celery Settings
    celery_broker_url: str = Field(
        default="redis://localhost:6379/0",
        description="Celery broker URL"
    )
    celery_result_backend: str = Field(
        default="redis://localhost:6379/1",
        description="Celery result backend URL"
    )

    # Cache Settings
    cache_backend: str = Field(
        default="sql",
        description="Cache/history store backend (sql or memory)"
    )
    cache_default_ttl_seconds: int = Field(
        default=24 * 60 * 60,
        description="Lifetime of a cached provider result"
    )
    cache_sweep_interval_seconds: int = Field(
        default=15 * 60,
        description="Interval between scheduled expiry sweeps"
    )
    cache_lock_stripes: int = Field(
        default=64,
        description="Number of lock stripes in the in-memory cache store"
    )

    # Search Provider Settings
    search_provider_urls: List[str] = Field(
        default_factory=list,
        description="Provider endpoints, tried in order"
    )
    search_provider_api_key: str = Field(default="", description="Provider API key")
    provider_timeout_seconds: float = Field(
        default=30.0,
        description="Upper bound for a single provider call"
    )

    # Admin Settings
    admin_api_key: str = Field(
        default="",
        description="Key required on admin routes (empty disables the check)"
    )

    # Logging Settings
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(
        default="json",
        description="Log format (json or standard)"
    )
    log_file: Optional[str] = Field(
        default=None,
        description="Log file path (None for stdout)"
    )
    log_rotation: str = Field(
        default="1 day",
        description="Log rotation interval"
    )
    log_retention: str = Field(
        default="30 days",
        description="Log retention period"
    )

    class Config:
        """Pydantic settings configuration."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


# Global settings instance
settings = Settings()
