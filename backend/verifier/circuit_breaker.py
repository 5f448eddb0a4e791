"""
Circuit breaker per source: open after N consecutive failures, half-open after recovery window.
"""
from __future__ import annotations

import asyncio
import time
from typing import Callable, Optional

from shared.utils.logging import get_logger

from verifier.config import VerifierSettings, get_verifier_settings

logger = get_logger(__name__)


class CircuitState:
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Per-source circuit breaker. An open circuit means the source is skipped."""

    def __init__(
        self,
        settings: Optional[VerifierSettings] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings or get_verifier_settings()
        self._clock = clock
        self._failures: dict[str, int] = {}
        self._state: dict[str, str] = {}
        self._opened_at: dict[str, float] = {}
        self._lock = asyncio.Lock()

    def state(self, source: str) -> str:
        return self._state.get(source, CircuitState.CLOSED)

    async def allow_request(self, source: str) -> bool:
        """Return True if a query is allowed (closed or half_open)."""
        async with self._lock:
            state = self._state.get(source, CircuitState.CLOSED)
            if state != CircuitState.OPEN:
                return True
            opened = self._opened_at.get(source, 0.0)
            if self._clock() - opened >= self._settings.circuit_recovery_s:
                self._state[source] = CircuitState.HALF_OPEN
                logger.info("circuit_half_open", source=source)
                return True
            return False

    async def record_success(self, source: str) -> None:
        """On success: close circuit if half_open; reset failures."""
        async with self._lock:
            if self._state.get(source) == CircuitState.HALF_OPEN:
                logger.info("circuit_closed", source=source)
            self._state[source] = CircuitState.CLOSED
            self._failures[source] = 0

    async def record_failure(self, source: str) -> None:
        """On failure: increment count; open circuit if threshold reached."""
        async with self._lock:
            self._failures[source] = self._failures.get(source, 0) + 1
            if self._state.get(source) == CircuitState.HALF_OPEN:
                self._state[source] = CircuitState.OPEN
                self._opened_at[source] = self._clock()
                logger.warning("circuit_open", source=source, reason="failure_in_half_open")
            elif self._failures[source] >= self._settings.circuit_failure_threshold:
                self._state[source] = CircuitState.OPEN
                self._opened_at[source] = self._clock()
                logger.warning(
                    "circuit_open",
                    source=source,
                    failures=self._failures[source],
                    threshold=self._settings.circuit_failure_threshold,
                )
