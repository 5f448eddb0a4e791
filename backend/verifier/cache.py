"""
Key/value result cache with per-entry TTL.
In-memory backend expires lazily on read (no per-key timers); the Redis backend
relies on native key expiry. Both expose the fixed-window counter primitive the
rate limiter is built on.
"""
from __future__ import annotations

import abc
import asyncio
import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from pydantic import BaseModel
from redis.exceptions import RedisError

from shared.utils.logging import get_logger
from shared.utils.redis_manager import RedisManager

from verifier.errors import CacheUnavailable

logger = get_logger(__name__)


class _Missing:
    """Sentinel for an absent or expired key; distinct from a cached None."""

    _instance: Optional["_Missing"] = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


class Cache(abc.ABC):
    """Async key/value store with optional per-entry TTL."""

    @abc.abstractmethod
    async def get(self, key: str) -> Any:
        """Return the stored value, or MISSING if absent or expired."""

    @abc.abstractmethod
    async def set(self, key: str, value: Any, ttl_s: Optional[float] = None) -> None:
        """Store value. Without a TTL the entry lives until delete/clear."""

    @abc.abstractmethod
    async def delete(self, key: str) -> None:
        pass

    @abc.abstractmethod
    async def clear(self) -> None:
        pass

    @abc.abstractmethod
    async def incr_window(self, key: str, window_ms: int) -> int:
        """
        Increment a fixed-window counter and return the count including this hit.
        The first hit in a window sets the counter to 1 and arms a window_ms expiry.
        """


@dataclass
class CacheEntry:
    key: str
    value: Any
    expires_at: Optional[float] = None  # monotonic deadline; None = permanent

    def expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class InMemoryCache(Cache):
    """Process-local cache. Expired entries are logically dead even before removal."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._clock = clock
        self._lock = asyncio.Lock()

    def _live(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expired(self._clock()):
            del self._entries[key]
            return None
        return entry

    async def get(self, key: str) -> Any:
        entry = self._live(key)
        return MISSING if entry is None else entry.value

    async def set(self, key: str, value: Any, ttl_s: Optional[float] = None) -> None:
        expires_at = self._clock() + ttl_s if ttl_s is not None else None
        self._entries[key] = CacheEntry(key=key, value=value, expires_at=expires_at)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def clear(self) -> None:
        self._entries.clear()

    async def incr_window(self, key: str, window_ms: int) -> int:
        async with self._lock:
            entry = self._live(key)
            if entry is None:
                self._entries[key] = CacheEntry(
                    key=key, value=1, expires_at=self._clock() + window_ms / 1000.0
                )
                return 1
            entry.value = int(entry.value) + 1
            return entry.value

    def purge_expired(self) -> int:
        """Eagerly drop expired entries. Returns the number removed."""
        now = self._clock()
        dead = [k for k, e in self._entries.items() if e.expired(now)]
        for key in dead:
            del self._entries[key]
        return len(dead)

    def size(self) -> int:
        return len(self._entries)


def _encode(value: Any) -> str:
    if isinstance(value, BaseModel):
        return value.model_dump_json()
    return json.dumps(value, default=str)


class RedisCache(Cache):
    """
    Redis-backed cache. Values are stored as JSON, so reads return plain
    JSON structures; callers re-validate them into models.
    Backend errors surface as CacheUnavailable.
    """

    def __init__(self, redis: RedisManager) -> None:
        self._redis = redis

    async def get(self, key: str) -> Any:
        try:
            raw = await self._redis.get_value(key)
        except (RedisError, OSError, RuntimeError) as exc:
            logger.warning("cache_get_error", key=key, error=str(exc))
            raise CacheUnavailable(f"cache get failed: {exc}") from exc
        if raw is None:
            return MISSING
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("cache_corrupt_entry", key=key)
            return MISSING

    async def set(self, key: str, value: Any, ttl_s: Optional[float] = None) -> None:
        ttl = max(1, int(ttl_s)) if ttl_s is not None else None
        try:
            await self._redis.set_value(key, _encode(value), ttl_s=ttl)
        except (RedisError, OSError, RuntimeError) as exc:
            logger.warning("cache_set_error", key=key, error=str(exc))
            raise CacheUnavailable(f"cache set failed: {exc}") from exc

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete_value(key)
        except (RedisError, OSError, RuntimeError) as exc:
            logger.warning("cache_delete_error", key=key, error=str(exc))
            raise CacheUnavailable(f"cache delete failed: {exc}") from exc

    async def clear(self) -> None:
        try:
            deleted = await self._redis.delete_namespace()
        except (RedisError, OSError, RuntimeError) as exc:
            logger.warning("cache_clear_error", error=str(exc))
            raise CacheUnavailable(f"cache clear failed: {exc}") from exc
        logger.info("cache_cleared", deleted=deleted)

    async def incr_window(self, key: str, window_ms: int) -> int:
        try:
            return await self._redis.incr_window(key, window_ms)
        except (RedisError, OSError, RuntimeError) as exc:
            raise CacheUnavailable(f"counter increment failed: {exc}") from exc
