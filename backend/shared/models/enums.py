"""Domain enumerations for the Trust Verifier platform."""
from __future__ import annotations

from enum import Enum


class VerificationStatus(str, Enum):
    VERIFIED = "Verified"
    PENDING = "Pending"
    FAILED = "Failed"

    @property
    def is_verified(self) -> bool:
        return self == VerificationStatus.VERIFIED


class JobState(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class SourceTier(str, Enum):
    """Primary sources are registries of record; secondary sources corroborate."""
    PRIMARY = "primary"
    SECONDARY = "secondary"


class SourceName(str, Enum):
    OPENCORPORATES = "opencorporates"
    COMPANIES_HOUSE = "companies_house"
    LINKEDIN = "linkedin"
    STATIC = "static"


class FlagSeverity(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
