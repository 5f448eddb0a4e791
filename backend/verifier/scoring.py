"""
Composite trust scoring.
Primary contributions are summed, secondary sources only count once the primary
score clears the gate, and the total is capped at 100.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from shared.models.domain import SourceResult
from shared.models.enums import VerificationStatus

MAX_TRUST_SCORE = 100.0


@dataclass
class TierOutcome:
    """Results of querying every adapter in one tier."""
    results: list[SourceResult] = field(default_factory=list)
    attempted: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def score(self) -> float:
        return sum(r.contribution for r in self.results)

    @property
    def any_matched(self) -> bool:
        return any(r.matched for r in self.results)


def secondary_gate_open(primary_score: float, threshold: float) -> bool:
    """Hard threshold: secondary sources cannot rescue a subject that fails primary screening."""
    return primary_score >= threshold


def composite_score(primary_score: float, secondary_score: float) -> float:
    return max(0.0, min(primary_score + secondary_score, MAX_TRUST_SCORE))


def assign_status(trust_score: float, verified_threshold: float) -> VerificationStatus:
    """Low scores stay Pending; Failed is reserved for lookup errors and not-found."""
    if trust_score >= verified_threshold:
        return VerificationStatus.VERIFIED
    return VerificationStatus.PENDING
