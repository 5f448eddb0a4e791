"""
Lightweight metrics collection for Trust Verifier.
Wraps prometheus_client with async-safe patterns.
"""
from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from prometheus_client import Counter, Histogram, start_http_server

from shared.config import get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Counters ────────────────────────────────────────────────────────────
VERIFICATIONS = Counter(
    "tv_verifications_total",
    "Total completed verifications",
    ["status"],
)
CACHE_LOOKUPS = Counter(
    "tv_cache_lookups_total",
    "Verification cache lookups",
    ["outcome"],
)
SOURCE_REQUESTS = Counter(
    "tv_source_requests_total",
    "Total source adapter queries",
    ["source", "outcome"],
)
RATE_LIMIT_DENIALS = Counter(
    "tv_rate_limit_denials_total",
    "Verification requests rejected by the rate limiter",
)
DUPLICATE_HITS = Counter(
    "tv_duplicate_postings_total",
    "Job postings rejected as duplicates",
)
JOB_TRANSITIONS = Counter(
    "tv_job_transitions_total",
    "Async job state transitions",
    ["state"],
)

# ── Histograms ──────────────────────────────────────────────────────────
SOURCE_LATENCY = Histogram(
    "tv_source_latency_seconds",
    "Source adapter latency in seconds",
    ["source"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)
VERIFICATION_LATENCY = Histogram(
    "tv_verification_latency_seconds",
    "End-to-end verification latency on cache miss",
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0),
)


@asynccontextmanager
async def atrack_latency(histogram: Histogram, **labels: str) -> AsyncIterator[None]:
    """Async context manager to track operation latency."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        if labels:
            histogram.labels(**labels).observe(elapsed)
        else:
            histogram.observe(elapsed)


def start_metrics_server(port: int | None = None) -> None:
    """Start the Prometheus metrics HTTP server."""
    settings = get_settings()
    if not settings.metrics_enabled:
        return
    metrics_port = port or settings.metrics_port
    try:
        start_http_server(metrics_port)
        logger.info("metrics_server_started", port=metrics_port)
    except OSError as exc:
        logger.warning("metrics_server_failed", error=str(exc), port=metrics_port)
