"""
Shared configuration management for the condominium back-office API.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service settings, read from ``CONDO_*`` environment variables or ``.env``."""

    model_config = SettingsConfigDict(
        env_prefix="CONDO_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")
    service_name: str = Field(default="condo-api")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000)

    # Shared store (Redis). redis_url wins over host/port/password when set.
    redis_url: Optional[str] = Field(default=None)
    redis_host: str = Field(default="localhost")
    redis_port: int = Field(default=6379)
    redis_password: Optional[str] = Field(default=None)
    redis_db: int = Field(default=0)
    redis_socket_timeout: float = Field(default=5.0)
    redis_health_check_interval: float = Field(default=30.0)

    # Rate limiting (window in minutes, like the legacy RATE_LIMIT_WINDOW)
    rate_limit_window: int = Field(default=15, gt=0)
    rate_limit_max: int = Field(default=100, gt=0)
    trust_forwarded: bool = Field(default=False)

    # Response cache
    default_cache_ttl: int = Field(default=300, gt=0)

    def store_url(self) -> str:
        """Build the Redis connection URL."""
        if self.redis_url:
            return self.redis_url
        auth = f":{self.redis_password}@" if self.redis_password else ""
        return f"redis://{auth}{self.redis_host}:{self.redis_port}/{self.redis_db}"


def get_settings(**overrides) -> Settings:
    """Get settings for the service, with optional explicit overrides."""
    return Settings(**overrides)
