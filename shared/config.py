"""
Shared configuration management for the TaskHub services.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="TASKHUB_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Identity provider (Cognito user pool)
    cognito_region: str = Field(default="us-east-1")
    cognito_user_pool_id: str = Field(default="us-east-1_example")
    cognito_client_id: Optional[str] = Field(default=None)
    jwks_url_override: Optional[str] = Field(default=None)

    # Signing key cache
    jwks_cache_ttl_seconds: float = Field(default=24 * 60 * 60, gt=0)
    jwks_refresh_limit: int = Field(default=10, ge=1)
    jwks_refresh_window_seconds: float = Field(default=60, gt=0)
    jwks_fetch_timeout_seconds: float = Field(default=5.0, gt=0)

    # Token validation
    token_clock_skew_seconds: int = Field(default=0, ge=0)

    # Pagination
    default_page_size: int = Field(default=20, ge=1)
    max_page_size: int = Field(default=100, ge=1)

    @property
    def issuer_uri(self) -> str:
        """Issuer every accepted token must carry in its ``iss`` claim."""
        return f"https://cognito-idp.{self.cognito_region}.amazonaws.com/{self.cognito_user_pool_id}"

    @property
    def jwks_url(self) -> str:
        """Well-known key set endpoint of the user pool."""
        if self.jwks_url_override:
            return self.jwks_url_override
        return f"{self.issuer_uri}/.well-known/jwks.json"


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
