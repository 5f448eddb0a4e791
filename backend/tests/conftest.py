"""
Shared fixtures: in-memory components wired around a controllable clock.
"""
from __future__ import annotations

from typing import Any, Callable, Optional

import pytest

from verifier.cache import InMemoryCache
from verifier.config import VerifierSettings
from verifier.duplicates import DuplicateDetector
from verifier.engine import VerificationOrchestrator
from verifier.rate_limiter import FixedWindowRateLimiter
from verifier.sources.base import SourceAdapter
from verifier.statistics import StatisticsAggregator

from fakes import FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def verifier_settings() -> VerifierSettings:
    return VerifierSettings(source_timeout_s=0.2, rate_limit_max_requests=100)


@pytest.fixture
def make_orchestrator(
    clock: FakeClock, verifier_settings: VerifierSettings
) -> Callable[..., VerificationOrchestrator]:
    def factory(
        sources: list[SourceAdapter],
        settings: Optional[VerifierSettings] = None,
        cache: Optional[InMemoryCache] = None,
        **kwargs: Any,
    ) -> VerificationOrchestrator:
        cache = cache or InMemoryCache(clock=clock)
        return VerificationOrchestrator(
            cache=cache,
            rate_limiter=FixedWindowRateLimiter(cache),
            duplicate_detector=DuplicateDetector(),
            statistics=StatisticsAggregator(cache, now=clock.now),
            sources=sources,
            settings=settings or verifier_settings,
            now=clock.now,
            **kwargs,
        )

    return factory
