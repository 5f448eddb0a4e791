"""
Central configuration for all Trust Verifier services.
Uses pydantic-settings for env-based config with validation.
"""
from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic import Field, RedisDsn
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    DEV = "dev"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Root settings shared across all services."""

    model_config = SettingsConfigDict(
        env_prefix="TV_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── General ──────────────────────────────────────────────
    environment: Environment = Environment.DEV
    log_level: str = "INFO"
    instance_id: str = Field(default="", description="Unique pod/container ID for log context")

    # ── Redis ────────────────────────────────────────────────
    redis_url: RedisDsn = Field(default="redis://redis:6379/0")
    redis_max_connections: int = 50
    redis_key_prefix: str = "trustos"

    # ── Providers ────────────────────────────────────────────
    provider_request_timeout_s: float = 8.0
    provider_max_retries: int = 2

    opencorporates_api_key: str = ""
    opencorporates_base_url: str = "https://api.opencorporates.com/v0.4"
    companies_house_api_key: str = ""
    companies_house_base_url: str = "https://api.company-information.service.gov.uk"
    linkedin_access_token: str = ""
    linkedin_base_url: str = "https://api.linkedin.com/v2"

    # ── Observability ────────────────────────────────────────
    metrics_enabled: bool = True
    metrics_port: int = 9090

    @property
    def redis_url_str(self) -> str:
        return str(self.redis_url)

    @property
    def use_mock_sources(self) -> bool:
        """No registry credentials configured: fall back to fixture data."""
        return not (self.opencorporates_api_key or self.companies_house_api_key)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton access to validated settings."""
    return Settings()
