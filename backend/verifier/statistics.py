"""
Running verification statistics persisted through the cache with no TTL.
All mutations go through one lock so the running average stays exact.
"""
from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Callable, Iterable, Optional, Union

from shared.models.domain import (
    DetailedStats,
    FlagCount,
    JobFlag,
    VerificationStats,
    utcnow,
)
from shared.models.enums import VerificationStatus
from shared.utils.logging import get_logger
from shared.utils.redis_manager import STATS_KEY

from verifier.cache import MISSING, Cache
from verifier.errors import CacheUnavailable

logger = get_logger(__name__)

FlagLike = Union[JobFlag, str]


class StatisticsAggregator:
    """Single-writer aggregate over every recorded verification."""

    def __init__(
        self,
        cache: Cache,
        key: str = STATS_KEY,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self._cache = cache
        self._key = key
        self._now = now
        self._stats: Optional[VerificationStats] = None
        self._lock = asyncio.Lock()

    async def _load(self) -> VerificationStats:
        if self._stats is not None:
            return self._stats
        stored = MISSING
        try:
            stored = await self._cache.get(self._key)
        except CacheUnavailable as exc:
            logger.warning("stats_load_failed", key=self._key, error=exc.message)
        if stored is MISSING:
            now = self._now()
            self._stats = VerificationStats(last_updated=now, created_at=now)
        else:
            self._stats = VerificationStats.model_validate(stored)
        return self._stats

    async def _save(self, stats: VerificationStats) -> None:
        try:
            await self._cache.set(self._key, stats.model_dump(mode="json"))
        except CacheUnavailable as exc:
            logger.warning("stats_save_failed", key=self._key, error=exc.message)

    async def record(
        self,
        status: Union[VerificationStatus, str],
        confidence: float,
        flags: Iterable[FlagLike] = (),
    ) -> VerificationStats:
        """Fold one verification outcome into the aggregate."""
        flag_types = [f.type if isinstance(f, JobFlag) else str(f) for f in flags]
        async with self._lock:
            stats = await self._load()
            n = stats.total_verifications + 1
            stats.total_verifications = n
            if VerificationStatus(status).is_verified:
                stats.verified_count += 1
            if flag_types:
                stats.flagged_count += 1
            stats.average_confidence = (stats.average_confidence * (n - 1) + confidence) / n

            counts = {fc.type: fc for fc in stats.flag_counts}
            for flag_type in flag_types:
                if flag_type in counts:
                    counts[flag_type].count += 1
                else:
                    counts[flag_type] = FlagCount(type=flag_type, count=1)
            stats.flag_counts = sorted(counts.values(), key=lambda fc: fc.count, reverse=True)
            stats.last_updated = self._now()

            await self._save(stats)
            return stats.model_copy(deep=True)

    async def get_stats(self) -> VerificationStats:
        async with self._lock:
            return (await self._load()).model_copy(deep=True)

    async def get_detailed_stats(self) -> DetailedStats:
        stats = await self.get_stats()
        total = stats.total_verifications
        total_flags = sum(fc.count for fc in stats.flag_counts)
        # naive: measured from the last update, not from creation
        days = (self._now() - stats.last_updated).total_seconds() / 86400.0
        per_day = total / days if days > 0 else float(total)
        return DetailedStats(
            **stats.model_dump(),
            verification_rate=stats.verified_count / total if total else 0.0,
            flag_rate=stats.flagged_count / total if total else 0.0,
            flag_distribution={
                fc.type: (fc.count / total_flags if total_flags else 0.0)
                for fc in stats.flag_counts
            },
            average_verifications_per_day=per_day,
        )

    async def reset(self) -> None:
        async with self._lock:
            now = self._now()
            self._stats = VerificationStats(last_updated=now, created_at=now)
            await self._save(self._stats)
            logger.info("stats_reset", key=self._key)
