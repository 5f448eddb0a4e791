"""
Unit tests for duplicate posting detection and the statistics aggregator.
"""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from shared.models.domain import JobFlag, JobPosting, VerificationStats
from shared.models.enums import FlagSeverity, VerificationStatus
from shared.utils.redis_manager import STATS_KEY
from verifier.cache import InMemoryCache, RedisCache
from verifier.duplicates import DuplicateDetector, jaccard, posting_similarity, word_set
from verifier.statistics import StatisticsAggregator

from fakes import FakeClock


def _posting(**overrides) -> JobPosting:
    fields = {
        "id": "p1",
        "title": "Senior Python Engineer",
        "description": "Build async verification services for trust and safety.",
        "company": "Acme Corp",
        "location": "London",
        "requirements": ["Python", "asyncio", "Redis"],
    }
    fields.update(overrides)
    return JobPosting.model_validate(fields)


# ── Similarity ──────────────────────────────────────────────────────────

class TestSimilarity:

    def test_word_set_strips_punctuation_and_case(self) -> None:
        assert word_set("Hello, World! hello") == {"hello", "world"}

    def test_jaccard_of_two_empty_sets_is_zero(self) -> None:
        assert jaccard(set(), set()) == 0.0

    def test_jaccard_partial_overlap(self) -> None:
        assert jaccard({"a", "b"}, {"b", "c"}) == pytest.approx(1 / 3)

    def test_identical_postings_score_one(self) -> None:
        assert posting_similarity(_posting(), _posting(id="p2")) == pytest.approx(1.0)

    def test_disjoint_postings_score_zero(self) -> None:
        other = _posting(
            title="Line Cook",
            description="Prepare meals nightly",
            company="Bistro Ltd",
            requirements=["knife skills"],
        )
        assert posting_similarity(_posting(), other) == 0.0

    def test_company_match_is_normalized(self) -> None:
        a = _posting(title="", description="", requirements=[])
        b = _posting(title="", description="", requirements=[], company="ACME corp.")
        assert posting_similarity(a, b) == pytest.approx(0.2)


# ── DuplicateDetector ───────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_first_posting_is_not_duplicate() -> None:
    detector = DuplicateDetector()
    check = await detector.check_duplicate(_posting())
    assert check.is_duplicate is False
    assert check.matches == []
    assert len(detector) == 1


@pytest.mark.asyncio
async def test_repeat_posting_is_duplicate_with_match_details() -> None:
    detector = DuplicateDetector()
    await detector.check_duplicate(_posting(id="first"))
    check = await detector.check_duplicate(_posting(id="second"))
    assert check.is_duplicate is True
    assert check.similarity == pytest.approx(1.0)
    assert [m.id for m in check.matches] == ["first"]
    assert check.matches[0].company == "Acme Corp"
    # duplicates are still remembered
    assert len(detector) == 2


@pytest.mark.asyncio
async def test_same_instance_resubmitted_is_not_its_own_duplicate() -> None:
    detector = DuplicateDetector()
    posting = _posting()
    await detector.check_duplicate(posting)
    check = await detector.check_duplicate(posting)
    assert check.is_duplicate is False
    assert len(detector) == 1


@pytest.mark.asyncio
async def test_below_threshold_is_not_duplicate() -> None:
    detector = DuplicateDetector(threshold=0.8)
    await detector.check_duplicate(_posting())
    # company + requirements only: 0.4
    check = await detector.check_duplicate(_posting(title="Chef", description="Cook food"))
    assert check.is_duplicate is False


@pytest.mark.asyncio
async def test_capacity_evicts_oldest_first() -> None:
    detector = DuplicateDetector(capacity=2)
    await detector.check_duplicate(_posting(id="old"))
    await detector.check_duplicate(_posting(id="x", title="A", description="a", company="X", requirements=["x"]))
    await detector.check_duplicate(_posting(id="y", title="B", description="b", company="Y", requirements=["y"]))
    assert len(detector) == 2
    check = await detector.check_duplicate(_posting(id="new"))
    assert check.is_duplicate is False


@pytest.mark.asyncio
async def test_matches_sorted_by_similarity() -> None:
    detector = DuplicateDetector(threshold=0.5)
    await detector.check_duplicate(_posting(id="close", requirements=["Python"]))
    await detector.check_duplicate(_posting(id="exact"))
    check = await detector.check_duplicate(_posting(id="candidate"))
    assert [m.id for m in check.matches] == ["exact", "close"]
    assert check.matches[0].similarity >= check.matches[1].similarity


# ── StatisticsAggregator ────────────────────────────────────────────────

@pytest.fixture
def aggregator(clock: FakeClock) -> StatisticsAggregator:
    return StatisticsAggregator(InMemoryCache(clock=clock), now=clock.now)


@pytest.mark.asyncio
async def test_running_average(aggregator: StatisticsAggregator) -> None:
    for confidence in (100, 0, 50):
        await aggregator.record(VerificationStatus.PENDING, confidence)
    stats = await aggregator.get_stats()
    assert stats.total_verifications == 3
    assert stats.average_confidence == pytest.approx(50.0)


@pytest.mark.asyncio
async def test_verified_and_flag_counts(aggregator: StatisticsAggregator) -> None:
    await aggregator.record(VerificationStatus.VERIFIED, 90, flags=["salary_outlier"])
    await aggregator.record("Verified", 85)
    high = JobFlag(type="suspicious_domain", severity=FlagSeverity.HIGH)
    await aggregator.record(VerificationStatus.FAILED, 0, flags=[high, "salary_outlier"])

    stats = await aggregator.get_stats()
    assert stats.verified_count == 2
    assert stats.flagged_count == 2
    assert [(fc.type, fc.count) for fc in stats.flag_counts] == [
        ("salary_outlier", 2),
        ("suspicious_domain", 1),
    ]


@pytest.mark.asyncio
async def test_detailed_stats_rates(aggregator: StatisticsAggregator, clock: FakeClock) -> None:
    await aggregator.record(VerificationStatus.VERIFIED, 100, flags=["a"])
    await aggregator.record(VerificationStatus.PENDING, 40, flags=["a", "b", "b"])
    await aggregator.record(VerificationStatus.PENDING, 40)
    await aggregator.record(VerificationStatus.PENDING, 40)
    clock.advance(2 * 86400)

    detailed = await aggregator.get_detailed_stats()
    assert detailed.verification_rate == pytest.approx(0.25)
    assert detailed.flag_rate == pytest.approx(0.5)
    assert detailed.flag_distribution == pytest.approx({"a": 0.5, "b": 0.5})
    assert detailed.average_verifications_per_day == pytest.approx(2.0)


@pytest.mark.asyncio
async def test_empty_detailed_stats(aggregator: StatisticsAggregator) -> None:
    detailed = await aggregator.get_detailed_stats()
    assert detailed.total_verifications == 0
    assert detailed.verification_rate == 0.0
    assert detailed.flag_distribution == {}


@pytest.mark.asyncio
async def test_stats_persist_through_cache(clock: FakeClock) -> None:
    cache = InMemoryCache(clock=clock)
    first = StatisticsAggregator(cache, now=clock.now)
    await first.record(VerificationStatus.VERIFIED, 80)

    stored = await cache.get(STATS_KEY)
    assert VerificationStats.model_validate(stored).total_verifications == 1

    second = StatisticsAggregator(cache, now=clock.now)
    stats = await second.record(VerificationStatus.PENDING, 40)
    assert stats.total_verifications == 2
    assert stats.average_confidence == pytest.approx(60.0)


@pytest.mark.asyncio
async def test_reset_clears_aggregate(aggregator: StatisticsAggregator) -> None:
    await aggregator.record(VerificationStatus.VERIFIED, 80, flags=["x"])
    await aggregator.reset()
    stats = await aggregator.get_stats()
    assert stats.total_verifications == 0
    assert stats.flag_counts == []


@pytest.mark.asyncio
async def test_stats_survive_cache_outage() -> None:
    redis = MagicMock()
    redis.get_value = AsyncMock(side_effect=RedisConnectionError("down"))
    redis.set_value = AsyncMock(side_effect=RedisConnectionError("down"))
    aggregator = StatisticsAggregator(RedisCache(redis))
    stats = await aggregator.record(VerificationStatus.VERIFIED, 90)
    assert stats.total_verifications == 1
