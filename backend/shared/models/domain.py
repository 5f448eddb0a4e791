"""
Pydantic v2 domain models shared across all Trust Verifier services.
These are the canonical wire/internal representations; every model round-trips
through model_dump_json()/model_validate_json().
"""
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shared.models.enums import (
    FlagSeverity,
    JobState,
    SourceTier,
    VerificationStatus,
)

_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_name(value: Optional[str]) -> str:
    """Lower-case, strip punctuation and collapse whitespace."""
    if not value:
        return ""
    cleaned = _NON_WORD.sub("", value.lower())
    return _WHITESPACE.sub(" ", cleaned).strip()


# ── Base ────────────────────────────────────────────────────────────────
class DomainModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class FrozenModel(DomainModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True, frozen=True)


# ── Subjects ────────────────────────────────────────────────────────────
class VerificationSubject(FrozenModel):
    """Identifying attributes of the company being verified."""
    name: str = ""
    registration_number: Optional[str] = None
    location: Optional[str] = None
    industry: Optional[str] = None
    linkedin_id: Optional[str] = None
    website: Optional[str] = None

    @property
    def normalized_name(self) -> str:
        return normalize_name(self.name)

    @property
    def subject_key(self) -> str:
        """Registration number when known, else the normalized name."""
        reg = (self.registration_number or "").strip()
        return reg or self.normalized_name


class JobFlag(FrozenModel):
    type: str
    severity: FlagSeverity = FlagSeverity.MEDIUM
    description: str = ""


class SalaryRange(FrozenModel):
    min: float
    max: float
    currency: str = "USD"


class JobPosting(FrozenModel):
    """A job posting tied to a company; admitted only after the duplicate check."""
    id: Optional[str] = None
    title: str = ""
    description: str = ""
    company: Optional[VerificationSubject] = None
    location: str = ""
    requirements: list[str] = Field(default_factory=list)
    salary: Optional[SalaryRange] = None
    posted_date: datetime = Field(default_factory=utcnow)
    flags: list[JobFlag] = Field(default_factory=list)

    @field_validator("company", mode="before")
    @classmethod
    def company_from_name(cls, value: Any) -> Any:
        """Accept a bare company name as shorthand."""
        if isinstance(value, str):
            return {"name": value} if value.strip() else None
        return value


Subject = Union[VerificationSubject, JobPosting]


# ── Source results ──────────────────────────────────────────────────────
class SourceResult(FrozenModel):
    """Output of one source query. Produced once, never mutated."""
    source_name: str
    tier: SourceTier
    matched: bool
    data: dict[str, Any] = Field(default_factory=dict)
    raw_confidence: float = Field(default=0.0, ge=0.0, le=100.0)
    contribution: float = 0.0
    fetched_at: datetime = Field(default_factory=utcnow)


class VerificationResult(FrozenModel):
    trust_score: float = Field(ge=0.0, le=100.0)
    status: VerificationStatus
    sources: list[SourceResult] = Field(default_factory=list)
    computed_at: datetime = Field(default_factory=utcnow)
    cache_key: str
    reason: Optional[str] = None
    # stable code for a Failed result: ALL_SOURCES_FAILED is transient, COMPANY_NOT_FOUND is not
    reason_code: Optional[str] = None
    primary_score: float = 0.0
    secondary_score: float = 0.0
    secondary_checked: bool = False
    flags: list[JobFlag] = Field(default_factory=list)


# ── Duplicate detection ─────────────────────────────────────────────────
class DuplicateMatch(FrozenModel):
    id: str
    title: str
    company: str
    similarity: float


class DuplicateCheckResult(FrozenModel):
    is_duplicate: bool
    similarity: float = 0.0
    matches: list[DuplicateMatch] = Field(default_factory=list)


# ── Async jobs ──────────────────────────────────────────────────────────
class JobRecord(DomainModel):
    job_id: str
    state: JobState = JobState.PENDING
    result: Optional[VerificationResult] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    submitted_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    attempts: int = 1
    # retained for retries, never exposed to pollers
    subject: Optional[Subject] = Field(default=None, exclude=True)


class BulkSubmission(DomainModel):
    """Per-item outcome of a bulk submit; invalid items carry no job record."""
    index: int
    job_id: Optional[str] = None
    state: str
    error: Optional[str] = None
    fields: list[str] = Field(default_factory=list)


class BulkStatus(DomainModel):
    job_id: str
    state: str
    record: Optional[JobRecord] = None


# ── Statistics ──────────────────────────────────────────────────────────
class FlagCount(DomainModel):
    type: str
    count: int = 0


class VerificationStats(DomainModel):
    total_verifications: int = 0
    verified_count: int = 0
    flagged_count: int = 0
    average_confidence: float = 0.0
    flag_counts: list[FlagCount] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow)


class DetailedStats(VerificationStats):
    verification_rate: float = 0.0
    flag_rate: float = 0.0
    flag_distribution: dict[str, float] = Field(default_factory=dict)
    average_verifications_per_day: float = 0.0
