"""
Hierarchical verification orchestrator.
rate limit -> duplicate gate (postings) -> cache -> primary sources -> secondary
gate -> composite score -> persist (cache + statistics).
"""
from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Awaitable, Callable, Optional, Sequence

from pydantic import ValidationError as SchemaError

from shared.models.domain import (
    JobFlag,
    JobPosting,
    SourceResult,
    VerificationResult,
    VerificationSubject,
    normalize_name,
    utcnow,
)
from shared.models.enums import SourceTier, VerificationStatus
from shared.utils.logging import get_logger
from shared.utils.metrics import (
    CACHE_LOOKUPS,
    SOURCE_LATENCY,
    SOURCE_REQUESTS,
    VERIFICATION_LATENCY,
    VERIFICATIONS,
    atrack_latency,
)
from shared.utils.redis_manager import company_key, rate_limit_key

from verifier.cache import MISSING, Cache
from verifier.circuit_breaker import CircuitBreaker
from verifier.config import VerifierSettings, get_verifier_settings
from verifier.duplicates import DuplicateDetector
from verifier.errors import AllSourcesFailed, CacheUnavailable, DuplicatePosting, SourceUnavailable
from verifier.rate_limiter import FixedWindowRateLimiter
from verifier.scoring import TierOutcome, assign_status, composite_score, secondary_gate_open
from verifier.sources.base import SourceAdapter
from verifier.statistics import StatisticsAggregator
from verifier.validation import posting_company, validate_company

logger = get_logger(__name__)

# Stub hook for posting content analysis; returns extra flags
AnalysisHook = Callable[[JobPosting], Awaitable[Sequence[JobFlag]]]

NOT_FOUND_REASON = "No matching company found"
NOT_FOUND_CODE = "COMPANY_NOT_FOUND"


class VerificationOrchestrator:
    """Computes trust scores; every collaborator is injected."""

    def __init__(
        self,
        cache: Cache,
        rate_limiter: FixedWindowRateLimiter,
        duplicate_detector: DuplicateDetector,
        statistics: StatisticsAggregator,
        sources: Sequence[SourceAdapter],
        settings: Optional[VerifierSettings] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        analysis_hook: Optional[AnalysisHook] = None,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self._cache = cache
        self._rate_limiter = rate_limiter
        self._duplicates = duplicate_detector
        self._statistics = statistics
        self._settings = settings or get_verifier_settings()
        self._circuit = circuit_breaker
        self._analysis_hook = analysis_hook
        self._now = now

        unique: dict[str, SourceAdapter] = {}
        for adapter in sources:
            if adapter.name in unique:
                logger.warning("duplicate_source_ignored", source=adapter.name)
                continue
            unique[adapter.name] = adapter
        self._sources = list(unique.values())
        self._primary = [a for a in self._sources if a.tier == SourceTier.PRIMARY]
        self._secondary = [a for a in self._sources if a.tier == SourceTier.SECONDARY]

    @property
    def sources(self) -> list[SourceAdapter]:
        return list(self._sources)

    async def start(self) -> None:
        for adapter in self._sources:
            await adapter.start()

    async def close(self) -> None:
        for adapter in self._sources:
            await adapter.close()

    @staticmethod
    def cache_key(subject: VerificationSubject) -> str:
        location = normalize_name(subject.location) or "unknown"
        return company_key(subject.subject_key, location)

    # ── Entry points ────────────────────────────────────────────────────
    async def verify(self, subject: VerificationSubject) -> VerificationResult:
        """Verify a bare company."""
        validate_company(subject)
        return await self._run(subject)

    async def verify_posting(self, posting: JobPosting) -> VerificationResult:
        """Verify the company behind a job posting, behind the duplicate gate."""
        company = posting_company(posting)
        return await self._run(company, posting)

    async def invalidate(self, subject: VerificationSubject) -> None:
        key = self.cache_key(subject)
        try:
            await self._cache.delete(key)
        except CacheUnavailable as exc:
            logger.warning("verification_invalidate_failed", cache_key=key, error=exc.message)

    # ── Pipeline ────────────────────────────────────────────────────────
    async def _run(self, subject: VerificationSubject, posting: Optional[JobPosting] = None) -> VerificationResult:
        # a rejected request must not leave its posting in the duplicate window
        await self._rate_limiter.enforce(
            rate_limit_key(subject.subject_key),
            self._settings.rate_limit_max_requests,
            self._settings.rate_limit_window_ms,
        )

        flags: list[JobFlag] = []
        if posting is not None:
            check = await self._duplicates.check_duplicate(posting)
            if check.is_duplicate:
                raise DuplicatePosting(check)
            flags = await self._collect_flags(posting)

        key = self.cache_key(subject)
        cached = await self._read_cache(key)
        if cached is not None:
            logger.info("verification_cache_hit", cache_key=key)
            return cached.model_copy(update={"flags": flags}) if flags else cached

        async with atrack_latency(VERIFICATION_LATENCY):
            result = await self._compute(subject, key)
        await self._persist(key, result, flags)
        return result.model_copy(update={"flags": flags}) if flags else result

    async def _collect_flags(self, posting: JobPosting) -> list[JobFlag]:
        flags = list(posting.flags)
        if self._analysis_hook is None:
            return flags
        try:
            flags.extend(await self._analysis_hook(posting))
        except Exception as exc:
            logger.warning("posting_analysis_failed", title=posting.title, error=str(exc))
        return flags

    async def _read_cache(self, key: str) -> Optional[VerificationResult]:
        try:
            stored = await self._cache.get(key)
        except CacheUnavailable as exc:
            CACHE_LOOKUPS.labels(outcome="error").inc()
            logger.warning("verification_cache_unavailable", cache_key=key, error=exc.message)
            return None
        if stored is MISSING:
            CACHE_LOOKUPS.labels(outcome="miss").inc()
            return None
        try:
            result = VerificationResult.model_validate(stored)
        except SchemaError as exc:
            CACHE_LOOKUPS.labels(outcome="corrupt").inc()
            logger.warning("verification_cache_corrupt", cache_key=key, error=str(exc))
            return None
        CACHE_LOOKUPS.labels(outcome="hit").inc()
        return result

    async def _compute(self, subject: VerificationSubject, key: str) -> VerificationResult:
        primary = await self._query_tier(self._primary, subject)
        secondary = TierOutcome()
        gate_open = secondary_gate_open(primary.score, self._settings.secondary_gate_threshold)
        if gate_open and self._secondary:
            secondary = await self._query_tier(self._secondary, subject)
        else:
            logger.debug(
                "secondary_sources_skipped",
                company=subject.name,
                primary_score=primary.score,
                threshold=self._settings.secondary_gate_threshold,
            )

        attempted = primary.attempted + secondary.attempted
        failed = primary.failed + secondary.failed
        sources = primary.results + secondary.results

        if not attempted or len(failed) == len(attempted):
            error = AllSourcesFailed(failed)
            logger.warning("verification_all_sources_failed", company=subject.name, sources=failed)
            return self._failed(key, sources, error.message, error.code)

        if not (primary.any_matched or secondary.any_matched):
            logger.info("verification_not_found", company=subject.name, sources=attempted)
            return self._failed(key, sources, NOT_FOUND_REASON, NOT_FOUND_CODE)

        trust_score = composite_score(primary.score, secondary.score)
        return VerificationResult(
            trust_score=trust_score,
            status=assign_status(trust_score, self._settings.verified_threshold),
            sources=sources,
            computed_at=self._now(),
            cache_key=key,
            primary_score=primary.score,
            secondary_score=secondary.score,
            secondary_checked=bool(secondary.attempted),
        )

    def _failed(self, key: str, sources: list[SourceResult], reason: str, reason_code: str) -> VerificationResult:
        return VerificationResult(
            trust_score=0.0,
            status=VerificationStatus.FAILED,
            sources=sources,
            computed_at=self._now(),
            cache_key=key,
            reason=reason,
            reason_code=reason_code,
        )

    async def _query_tier(self, adapters: Sequence[SourceAdapter], subject: VerificationSubject) -> TierOutcome:
        outcome = TierOutcome()
        if not adapters:
            return outcome
        results = await asyncio.gather(*(self._query_one(a, subject) for a in adapters))
        for adapter, result in zip(adapters, results):
            outcome.attempted.append(adapter.name)
            if result is None:
                outcome.failed.append(adapter.name)
            else:
                outcome.results.append(result)
        return outcome

    async def _query_one(self, adapter: SourceAdapter, subject: VerificationSubject) -> Optional[SourceResult]:
        """One source query; any failure means this source is absent from the result."""
        if self._circuit is not None and not await self._circuit.allow_request(adapter.name):
            SOURCE_REQUESTS.labels(source=adapter.name, outcome="circuit_open").inc()
            logger.info("source_skipped_circuit_open", source=adapter.name)
            return None

        try:
            async with atrack_latency(SOURCE_LATENCY, source=adapter.name):
                result = await asyncio.wait_for(adapter.query(subject), timeout=self._settings.source_timeout_s)
        except asyncio.TimeoutError:
            outcome = "timeout"
            logger.warning("source_timeout", source=adapter.name, timeout_s=self._settings.source_timeout_s)
        except SourceUnavailable as exc:
            outcome = "error"
            logger.warning("source_unavailable", source=adapter.name, error=exc.message)
        except Exception as exc:
            outcome = "error"
            logger.warning("source_query_error", source=adapter.name, error=str(exc))
        else:
            SOURCE_REQUESTS.labels(source=adapter.name, outcome="matched" if result.matched else "unmatched").inc()
            if self._circuit is not None:
                await self._circuit.record_success(adapter.name)
            points = max(0.0, adapter.contribution(result))
            return result.model_copy(update={"contribution": points})

        SOURCE_REQUESTS.labels(source=adapter.name, outcome=outcome).inc()
        if self._circuit is not None:
            await self._circuit.record_failure(adapter.name)
        return None

    async def _persist(self, key: str, result: VerificationResult, flags: list[JobFlag]) -> None:
        if result.status != VerificationStatus.FAILED:
            try:
                await self._cache.set(key, result, ttl_s=self._settings.result_ttl_s)
            except CacheUnavailable as exc:
                logger.warning("verification_cache_write_failed", cache_key=key, error=exc.message)

        await self._statistics.record(result.status, result.trust_score, flags)
        VERIFICATIONS.labels(status=result.status.value).inc()
        logger.info(
            "verification_completed",
            cache_key=key,
            status=result.status.value,
            trust_score=result.trust_score,
            primary_score=result.primary_score,
            secondary_score=result.secondary_score,
            sources=[r.source_name for r in result.sources],
        )
