"""
Redis connection manager for Trust Verifier.
Provides async connection pool, atomic counter helpers, and key namespace utilities.
"""
from __future__ import annotations

from typing import Any, Optional

import redis.asyncio as aioredis
from redis.asyncio import Redis

from shared.config import Settings, get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Key namespaces ──────────────────────────────────────────────────────
COMPANY_KEY = "company:{subject_key}:{location}"
RATE_LIMIT_KEY = "ratelimit:{subject_key}"
STATS_KEY = "verification:stats"


def _fmt(template: str, **kwargs: Any) -> str:
    return template.format(**kwargs)


def company_key(subject_key: str, location: str) -> str:
    return _fmt(COMPANY_KEY, subject_key=subject_key, location=location)


def rate_limit_key(subject_key: str) -> str:
    return _fmt(RATE_LIMIT_KEY, subject_key=subject_key)


class RedisManager:
    """Manages async Redis connection pool and provides typed helpers."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._pool: Optional[Redis] = None

    async def connect(self) -> None:
        """Initialize the connection pool."""
        self._pool = aioredis.from_url(
            self._settings.redis_url_str,
            max_connections=self._settings.redis_max_connections,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_keepalive=True,
            retry_on_timeout=True,
        )
        await self._pool.ping()
        logger.info("redis_connected", url=self._settings.redis_url_str)

    async def disconnect(self) -> None:
        """Graceful shutdown."""
        if self._pool:
            await self._pool.aclose()
            logger.info("redis_disconnected")

    @property
    def client(self) -> Redis:
        if self._pool is None:
            raise RuntimeError("RedisManager not connected. Call connect() first.")
        return self._pool

    @property
    def prefix(self) -> str:
        return self._settings.redis_key_prefix

    def namespaced(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    # ── Plain values ────────────────────────────────────────────────────
    async def get_value(self, key: str) -> Optional[str]:
        return await self.client.get(self.namespaced(key))

    async def set_value(self, key: str, data: str, ttl_s: Optional[int] = None) -> None:
        """SET with EX when a TTL is given; a plain SET clears any previous TTL."""
        if ttl_s:
            await self.client.set(self.namespaced(key), data, ex=ttl_s)
        else:
            await self.client.set(self.namespaced(key), data)

    async def delete_value(self, key: str) -> None:
        await self.client.delete(self.namespaced(key))

    async def delete_namespace(self) -> int:
        """Delete every key under this manager's prefix. Returns deleted count."""
        deleted = 0
        batch: list[str] = []
        async for key in self.client.scan_iter(match=f"{self.prefix}:*", count=500):
            batch.append(key)
            if len(batch) >= 500:
                deleted += await self.client.delete(*batch)
                batch.clear()
        if batch:
            deleted += await self.client.delete(*batch)
        return deleted

    # ── Fixed-window counters ───────────────────────────────────────────

    # Lua script: increment and arm the window expiry on the first hit, atomically
    _INCR_WINDOW_SCRIPT = """
local current = redis.call("incr", KEYS[1])
if current == 1 then
    redis.call("pexpire", KEYS[1], ARGV[1])
end
return current
"""

    async def incr_window(self, key: str, window_ms: int) -> int:
        """Increment a fixed-window counter. Returns the count including this hit."""
        result = await self.client.eval(
            self._INCR_WINDOW_SCRIPT, 1, self.namespaced(key), str(int(window_ms))
        )
        return int(result)
