"""
Verifier service configuration.
Uses TV_VERIFIER_ prefix; Redis and provider credentials come from shared Settings.
Scoring weights are product calibration, so they live here rather than in code.
"""
from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class VerifierSettings(BaseSettings):
    """Verifier-specific settings; use get_settings() for Redis and provider keys."""

    model_config = SettingsConfigDict(
        env_prefix="TV_VERIFIER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Scoring weights (points contributed on match)
    opencorporates_weight: float = Field(default=40.0, description="Primary: OpenCorporates match")
    companies_house_weight: float = Field(default=20.0, description="Primary: Companies House match")
    linkedin_max_points: float = Field(default=30.0, description="Secondary: cap on LinkedIn contribution")
    linkedin_score_divisor: float = Field(default=3.0, description="Secondary: match score / divisor")
    static_weight: float = Field(default=40.0, description="Fixture source weight")

    # Thresholds
    secondary_gate_threshold: float = Field(default=40.0, description="Primary score needed to query secondary sources")
    verified_threshold: float = Field(default=80.0, description="Trust score at or above this is Verified")

    # Cache
    result_ttl_s: int = Field(default=24 * 60 * 60, description="TTL for cached verification results")

    # Rate limiting (per subject)
    rate_limit_max_requests: int = Field(default=100, description="Requests allowed per window per subject")
    rate_limit_window_ms: int = Field(default=60_000, description="Fixed window length in milliseconds")

    # Duplicate detection
    duplicate_capacity: int = Field(default=1000, description="Recent postings retained for comparison")
    duplicate_threshold: float = Field(default=0.8, description="Similarity at or above this is a duplicate")

    # Async jobs
    job_retention_s: int = Field(default=7 * 24 * 60 * 60, description="Job records older than this are swept")
    bulk_max_items: int = Field(default=100, description="Max items per bulk submission")

    # Sources
    source_timeout_s: float = Field(default=8.0, description="Per-source query timeout")

    # Circuit breaker
    circuit_failure_threshold: int = Field(default=5, description="Consecutive failures before opening circuit")
    circuit_recovery_s: float = Field(default=120.0, description="Seconds before half-open")


def get_verifier_settings() -> VerifierSettings:
    """Load verifier settings from the environment."""
    return VerifierSettings()
