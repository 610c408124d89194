"""
Shared configuration management for the rate limiter.
"""

from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="RATELIMIT_",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Counter store
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        validation_alias=AliasChoices("RATELIMIT_REDIS_URL", "REDIS_URL")
    )
    redis_socket_timeout: float = Field(default=5.0)
    redis_connect_timeout: float = Field(default=5.0)
    redis_health_check_interval: int = Field(default=30)

    # Bucket defaults
    default_rate: float = Field(default=5.0, gt=0)
    default_burst: int = Field(default=10, ge=1)
    namespace_prefix: str = Field(default="rate_limit")

    # Compare-and-set loop
    max_attempts: int = Field(default=8, ge=1)
    backoff_base: float = Field(default=0.005, ge=0)
    backoff_max: float = Field(default=0.05, ge=0)

    # Key expiry
    min_ttl_seconds: int = Field(default=60, ge=1)
    ttl_multiplier: float = Field(default=2.0, ge=1.0)

    # "closed" rejects requests when the limiter fails, "open" lets them through
    failure_policy: str = Field(default="closed", pattern="^(open|closed)$")


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str = "ratelimit"


@lru_cache(maxsize=1)
def get_config() -> ServiceConfig:
    """Get the process-wide limiter configuration."""
    return ServiceConfig()
