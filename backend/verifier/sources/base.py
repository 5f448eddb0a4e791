"""
Source adapter interface.
Every provider normalizes its answer to a SourceResult; the orchestrator treats
all adapters uniformly regardless of provider auth or pagination.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from shared.models.domain import SourceResult, VerificationSubject
from shared.models.enums import SourceTier
from shared.utils.logging import get_logger

logger = get_logger(__name__)


class SourceAdapter(ABC):
    """Base for registry-of-record and corroborating sources."""

    def __init__(self, weight: float) -> None:
        self._weight = weight

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @property
    @abstractmethod
    def tier(self) -> SourceTier:
        pass

    @property
    def weight(self) -> float:
        return self._weight

    @abstractmethod
    async def query(self, subject: VerificationSubject) -> SourceResult:
        """
        Look the subject up in this source. Return an unmatched result when the
        source answered but knows nothing about the subject.
        Raise SourceUnavailable on timeouts, non-2xx or malformed payloads.
        """
        pass

    def contribution(self, result: SourceResult) -> float:
        """Points this result adds to the composite score: fixed weight on match."""
        return self._weight if result.matched else 0.0

    def result(self, matched: bool, data: dict[str, Any] | None = None, raw_confidence: float = 0.0) -> SourceResult:
        return SourceResult(
            source_name=self.name,
            tier=self.tier,
            matched=matched,
            data=data or {},
            raw_confidence=raw_confidence,
        )

    async def start(self) -> None:
        """Acquire network resources, if any."""

    async def close(self) -> None:
        """Release network resources, if any."""
