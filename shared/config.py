"""
Shared configuration management for the Search Gateway.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_JWT_SECRET = "change-me-search-gateway-dev-secret"


class BaseConfig(BaseSettings):
    """Base configuration class with common settings.

    Every field can be overridden with a ``SEARCH_GATEWAY_`` prefixed
    environment variable (``SEARCH_GATEWAY_LOG_LEVEL=debug``) or a ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_prefix="SEARCH_GATEWAY_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = "local"
    log_level: str = "info"

    # Token issuance
    jwt_secret: str = DEFAULT_JWT_SECRET
    jwt_algorithm: str = "HS256"
    token_validity_seconds: int = Field(default=86400, gt=0)

    # Rate limiting
    rate_limit_permits_per_second: float = Field(default=100.0, gt=0)

    # Search engine
    search_engine_url: str = "http://localhost:9200"
    search_engine_username: Optional[str] = None
    search_engine_password: Optional[str] = None
    search_engine_timeout: float = Field(default=10.0, gt=0)
    search_engine_max_attempts: int = Field(default=3, ge=1)

    # Tenant index topology
    index_prefix: str = "search-docs-"
    index_shards: int = Field(default=5, ge=1)
    index_replicas: int = Field(default=2, ge=0)
    index_refresh_interval: str = "1s"

    # Observability
    enable_tracing: bool = False
    otel_exporter: Optional[str] = None
    enable_console_tracing: bool = False


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    @property
    def uses_default_secret(self) -> bool:
        return self.jwt_secret == DEFAULT_JWT_SECRET


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
