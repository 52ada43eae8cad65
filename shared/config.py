"""
Shared configuration management for the permission engine.
"""

from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="ACCESS_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # External services
    redis_url: str = Field(default="redis://localhost:6379/0")
    postgres_dsn: str = Field(default="postgres://localhost:5432/access")


class PermissionsConfig(BaseConfig):
    """Permission engine configuration.

    Every field can be overridden with an ``ACCESS_``-prefixed environment
    variable, e.g. ``ACCESS_CACHE_BACKEND=redis``.
    """

    service_name: str = "permissions"

    # Decision cache
    cache_backend: Literal["memory", "redis"] = Field(default="memory")
    cache_ttl_seconds: int = Field(default=300, gt=0)
    cache_key_prefix: str = Field(default="permission:")

    # Policy store
    store_backend: Literal["memory", "postgres"] = Field(default="memory")
    seed_default_policies: bool = Field(default=True)

    # Observability
    metrics_port: Optional[int] = Field(default=None)


def get_config(**overrides) -> PermissionsConfig:
    """Get configuration for the permission engine."""
    return PermissionsConfig(**overrides)
