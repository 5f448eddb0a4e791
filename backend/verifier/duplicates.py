"""
Duplicate job-posting detection over a bounded window of recent submissions.

Similarity is a weighted blend:
    0.3 * title_jaccard + 0.3 * description_jaccard
  + 0.2 * company_exact_match + 0.2 * requirements_jaccard
"""
from __future__ import annotations

import re
from collections import deque
from typing import Iterable

from shared.models.domain import (
    DuplicateCheckResult,
    DuplicateMatch,
    JobPosting,
    normalize_name,
)
from shared.utils.logging import get_logger
from shared.utils.metrics import DUPLICATE_HITS

logger = get_logger(__name__)

W_TITLE = 0.3
W_DESCRIPTION = 0.3
W_COMPANY = 0.2
W_REQUIREMENTS = 0.2

_PUNCT = re.compile(r"[^\w\s]")


def word_set(text: str) -> set[str]:
    """Lower-cased, punctuation-stripped word set."""
    return set(_PUNCT.sub("", (text or "").lower()).split())


def jaccard(a: set[str], b: set[str]) -> float:
    """|a & b| / |a | b|; two empty sets score 0 so blank fields never match."""
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def _lower_set(items: Iterable[str]) -> set[str]:
    return {item.strip().lower() for item in items if item and item.strip()}


def _company_name(posting: JobPosting) -> str:
    return posting.company.name if posting.company else ""


def posting_similarity(a: JobPosting, b: JobPosting) -> float:
    title = jaccard(word_set(a.title), word_set(b.title))
    description = jaccard(word_set(a.description), word_set(b.description))
    name_a = normalize_name(_company_name(a))
    company = 1.0 if name_a and name_a == normalize_name(_company_name(b)) else 0.0
    requirements = jaccard(_lower_set(a.requirements), _lower_set(b.requirements))
    return (
        W_TITLE * title
        + W_DESCRIPTION * description
        + W_COMPANY * company
        + W_REQUIREMENTS * requirements
    )


class DuplicateDetector:
    """Remembers the most recent `capacity` postings, evicting the oldest first."""

    def __init__(self, capacity: int = 1000, threshold: float = 0.8) -> None:
        self._recent: deque[JobPosting] = deque(maxlen=capacity)
        self._threshold = threshold

    def __len__(self) -> int:
        return len(self._recent)

    async def check_duplicate(self, posting: JobPosting) -> DuplicateCheckResult:
        """
        Compare against recent postings, then remember this one (duplicate or not).
        The same instance resubmitted (a job retry) is never compared with itself.
        """
        seen = any(existing is posting for existing in self._recent)
        # rounded so float error cannot drop an exact blend below the threshold
        scored = [
            (existing, round(posting_similarity(posting, existing), 6))
            for existing in self._recent
            if existing is not posting
        ]
        if not seen:
            self.store(posting)

        matches = sorted(
            (pair for pair in scored if pair[1] >= self._threshold),
            key=lambda pair: pair[1],
            reverse=True,
        )
        if not matches:
            return DuplicateCheckResult(is_duplicate=False, similarity=0.0, matches=[])

        DUPLICATE_HITS.inc()
        best = matches[0][1]
        logger.info(
            "duplicate_posting_detected",
            title=posting.title,
            company=_company_name(posting),
            similarity=best,
            match_count=len(matches),
        )
        return DuplicateCheckResult(
            is_duplicate=True,
            similarity=best,
            matches=[
                DuplicateMatch(
                    id=existing.id or "",
                    title=existing.title,
                    company=_company_name(existing),
                    similarity=score,
                )
                for existing, score in matches
            ],
        )

    def store(self, posting: JobPosting) -> None:
        self._recent.append(posting)
