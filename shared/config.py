"""
Shared configuration management for the tiered document cache.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CacheSettings(BaseSettings):
    """Cache configuration shared by every service coordinator."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="DOCCACHE_",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Cache behaviour
    ttl_seconds: int = Field(default=3600, ge=1)
    max_entries: int = Field(default=1000, ge=1)
    enabled: bool = Field(default=True)
    auto_invalidate: bool = Field(default=True)
    invalidate_on_start: bool = Field(default=True)

    # Remote tier (optional)
    redis_url: Optional[str] = Field(default=None)
    redis_token: Optional[str] = Field(default=None)
    redis_namespace: str = Field(default="doccache:")
    redis_timeout_seconds: float = Field(default=2.0, gt=0)


class ServiceConfig(CacheSettings):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
