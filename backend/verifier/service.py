"""
Collaborator-facing façade and component wiring.
A RedisManager yields a Redis-backed cache; without one everything stays in memory.
"""
from __future__ import annotations

from typing import Any, Iterable, Optional, Sequence

from shared.config import Settings, get_settings
from shared.models.domain import (
    BulkStatus,
    BulkSubmission,
    DetailedStats,
    DuplicateCheckResult,
    JobFlag,
    JobPosting,
    JobRecord,
    VerificationResult,
    VerificationStats,
)
from shared.models.enums import VerificationStatus
from shared.utils.logging import get_logger
from shared.utils.redis_manager import RedisManager

from verifier.cache import Cache, InMemoryCache, RedisCache
from verifier.circuit_breaker import CircuitBreaker
from verifier.config import VerifierSettings, get_verifier_settings
from verifier.duplicates import DuplicateDetector
from verifier.engine import AnalysisHook, VerificationOrchestrator
from verifier.errors import ValidationError
from verifier.jobs import JobLifecycleStore
from verifier.rate_limiter import FixedWindowRateLimiter
from verifier.sources import (
    CompaniesHouseSource,
    LinkedInSource,
    OpenCorporatesSource,
    SourceAdapter,
    StaticSource,
)
from verifier.statistics import StatisticsAggregator
from verifier.validation import coerce_subject

logger = get_logger(__name__)


class VerificationService:
    """Single entry point for callers: synchronous verify, async jobs and statistics."""

    def __init__(
        self,
        orchestrator: VerificationOrchestrator,
        jobs: JobLifecycleStore,
        duplicates: DuplicateDetector,
        statistics: StatisticsAggregator,
        cache: Cache,
    ) -> None:
        self.orchestrator = orchestrator
        self.jobs = jobs
        self.duplicates = duplicates
        self.statistics = statistics
        self.cache = cache

    async def start(self) -> None:
        await self.orchestrator.start()

    async def close(self) -> None:
        await self.jobs.drain()
        await self.orchestrator.close()

    async def verify(self, payload: Any) -> VerificationResult:
        subject = coerce_subject(payload)
        if isinstance(subject, JobPosting):
            return await self.orchestrator.verify_posting(subject)
        return await self.orchestrator.verify(subject)

    async def submit_verification(self, payload: Any) -> str:
        return await self.jobs.submit(payload)

    async def submit_bulk(self, items: Sequence[Any]) -> list[BulkSubmission]:
        return await self.jobs.submit_bulk(items)

    async def get_job_status(self, job_id: str) -> JobRecord:
        return await self.jobs.poll_status(job_id)

    async def get_bulk_status(self, job_ids: Iterable[str]) -> list[BulkStatus]:
        return await self.jobs.poll_bulk(job_ids)

    async def retry_job(self, job_id: str) -> JobRecord:
        return await self.jobs.retry_job(job_id)

    async def check_duplicate(self, payload: Any) -> DuplicateCheckResult:
        posting = coerce_subject(payload)
        if not isinstance(posting, JobPosting):
            raise ValidationError("Duplicate checks apply to job postings only", fields=["title", "description"])
        return await self.duplicates.check_duplicate(posting)

    async def record_verification(
        self,
        status: VerificationStatus | str,
        confidence: float,
        flags: Iterable[JobFlag | str] = (),
    ) -> VerificationStats:
        return await self.statistics.record(status, confidence, flags)

    async def get_stats(self) -> VerificationStats:
        return await self.statistics.get_stats()

    async def get_detailed_stats(self) -> DetailedStats:
        return await self.statistics.get_detailed_stats()


def build_sources(settings: Settings, verifier_settings: VerifierSettings) -> list[SourceAdapter]:
    """Registry sources for whichever credentials are configured; fixtures otherwise."""
    if settings.use_mock_sources:
        logger.info("using_static_sources")
        return [StaticSource(weight=verifier_settings.static_weight)]

    timeout = settings.provider_request_timeout_s
    sources: list[SourceAdapter] = []
    if settings.opencorporates_api_key:
        sources.append(
            OpenCorporatesSource(
                settings.opencorporates_base_url,
                settings.opencorporates_api_key,
                weight=verifier_settings.opencorporates_weight,
                timeout_s=timeout,
            )
        )
    if settings.companies_house_api_key:
        sources.append(
            CompaniesHouseSource(
                settings.companies_house_base_url,
                settings.companies_house_api_key,
                weight=verifier_settings.companies_house_weight,
                timeout_s=timeout,
            )
        )
    if settings.linkedin_access_token:
        sources.append(
            LinkedInSource(
                settings.linkedin_base_url,
                settings.linkedin_access_token,
                max_points=verifier_settings.linkedin_max_points,
                score_divisor=verifier_settings.linkedin_score_divisor,
                timeout_s=timeout,
            )
        )
    logger.info("sources_configured", sources=[s.name for s in sources])
    return sources


def build_service(
    settings: Optional[Settings] = None,
    verifier_settings: Optional[VerifierSettings] = None,
    redis: Optional[RedisManager] = None,
    sources: Optional[Sequence[SourceAdapter]] = None,
    analysis_hook: Optional[AnalysisHook] = None,
) -> VerificationService:
    """Wire every component. `redis` must already be connected."""
    settings = settings or get_settings()
    verifier_settings = verifier_settings or get_verifier_settings()

    cache: Cache = RedisCache(redis) if redis is not None else InMemoryCache()
    duplicates = DuplicateDetector(
        capacity=verifier_settings.duplicate_capacity,
        threshold=verifier_settings.duplicate_threshold,
    )
    statistics = StatisticsAggregator(cache)
    orchestrator = VerificationOrchestrator(
        cache=cache,
        rate_limiter=FixedWindowRateLimiter(cache),
        duplicate_detector=duplicates,
        statistics=statistics,
        sources=list(sources) if sources is not None else build_sources(settings, verifier_settings),
        settings=verifier_settings,
        circuit_breaker=CircuitBreaker(verifier_settings),
        analysis_hook=analysis_hook,
    )
    jobs = JobLifecycleStore(orchestrator, verifier_settings)
    logger.info("verification_service_built", cache=type(cache).__name__)
    return VerificationService(orchestrator, jobs, duplicates, statistics, cache)
