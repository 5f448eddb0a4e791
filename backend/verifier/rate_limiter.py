"""
Per-subject fixed-window rate limiting on top of the cache counter primitive.
Fails open when counter storage is unavailable: availability wins over strict limiting.
"""
from __future__ import annotations

from shared.utils.logging import get_logger
from shared.utils.metrics import RATE_LIMIT_DENIALS

from verifier.cache import Cache
from verifier.errors import CacheUnavailable, RateLimited

logger = get_logger(__name__)


class FixedWindowRateLimiter:
    """
    Each key is an independent fixed window (not sliding). The first request
    arms a window_ms expiry; exactly max_requests calls pass per window, so a
    burst straddling a window boundary can exceed the nominal rate.
    """

    def __init__(self, store: Cache) -> None:
        self._store = store

    async def check_limit(self, key: str, max_requests: int, window_ms: int) -> bool:
        """Return True if the request is allowed."""
        try:
            current = await self._store.incr_window(key, window_ms)
        except CacheUnavailable as exc:
            logger.warning("rate_limit_fail_open", key=key, error=exc.message)
            return True
        allowed = current <= max_requests
        if not allowed:
            RATE_LIMIT_DENIALS.inc()
            logger.info("rate_limit_denied", key=key, count=current, max_requests=max_requests)
        return allowed

    async def enforce(self, key: str, max_requests: int, window_ms: int) -> None:
        """Raise RateLimited when the request is over the limit."""
        if not await self.check_limit(key, max_requests, window_ms):
            raise RateLimited(key, max_requests, window_ms)
