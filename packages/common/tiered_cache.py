"""
Two-tier cache: in-process L1 in front of a shared Redis L2

Lookup Strategy:
1. L1 (process memory) - LRU bounded by an estimated byte budget, per-entry TTL
2. L2 (Redis, optional) - shared across API replicas, longer TTLs
3. L2 hit → promoted into L1 with the L1 default TTL
4. Both miss → caller falls through to the backing store

Writes land in L1 synchronously. The L2 write runs as a background task so
callers never wait on Redis. Any Redis failure is logged and treated as a
miss (reads) or no-op (writes).

Statistics are updated exactly once per get() and are guarded by a lock that
is never held across an await.
"""
import asyncio
import json
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional, Protocol, Set, Type, TypeVar, Union

import redis.asyncio as redis
import structlog
from pydantic import BaseModel, ValidationError, computed_field

logger = structlog.get_logger()

M = TypeVar("M", bound=BaseModel)

MEMORY_TIER = "memory"
REDIS_TIER = "redis"


class RemoteTier(Protocol):
    """Subset of redis.asyncio.Redis used by the cache"""

    async def get(self, name: str) -> Optional[Union[str, bytes]]:
        ...

    async def set(self, name: str, value: str, ex: Optional[int] = None) -> Any:
        ...

    async def delete(self, *names: str) -> Any:
        ...

    def scan_iter(self, match: Optional[str] = None, count: Optional[int] = None):
        ...


class CacheStatistics(BaseModel):
    total_hits: int = 0
    memory_hits: int = 0
    redis_hits: int = 0
    total_misses: int = 0
    last_reset: datetime

    @computed_field
    @property
    def total_requests(self) -> int:
        return self.total_hits + self.total_misses

    @computed_field
    @property
    def hit_ratio(self) -> float:
        """Hit ratio in percent"""
        total = self.total_hits + self.total_misses
        if total == 0:
            return 0.0
        return round(self.total_hits / total * 100, 2)


@dataclass
class _Entry:
    raw: str
    expires_at: float
    size: int


class TieredCache:
    """L1 + optional L2 key/value cache with hit/miss accounting"""

    def __init__(
        self,
        remote: Optional[RemoteTier] = None,
        *,
        enabled: bool = True,
        max_size_mb: int = 100,
        default_ttl: float = 30 * 60,
        remote_default_ttl: int = 3600,
        instance_name: str = "basket-filter-cache",
        clock=time.monotonic,
    ):
        self._remote = remote
        self.enabled = enabled
        self.max_size_bytes = max_size_mb * 1024 * 1024
        self.default_ttl = default_ttl
        self.remote_default_ttl = remote_default_ttl
        self.instance_name = instance_name
        self._clock = clock

        self._l1: "OrderedDict[str, _Entry]" = OrderedDict()
        self._l1_bytes = 0
        self._lock = threading.Lock()
        self._pending: Set[asyncio.Task] = set()

        self._hits = 0
        self._memory_hits = 0
        self._redis_hits = 0
        self._misses = 0
        self._last_reset = datetime.now(timezone.utc)

    @property
    def has_remote(self) -> bool:
        return self._remote is not None

    def _remote_key(self, key: str) -> str:
        return f"{self.instance_name}:{key}"

    # ---- serialization ------------------------------------------------------------------

    @staticmethod
    def _encode(value: Any) -> str:
        if isinstance(value, BaseModel):
            return value.model_dump_json()
        return json.dumps(value, default=str)

    @staticmethod
    def _estimate_size(raw: str) -> int:
        # two bytes per character
        return len(raw) * 2

    def _decode(self, key: str, raw: Union[str, bytes], model: Optional[Type[M]]):
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            if model is not None:
                return model.model_validate_json(raw)
            return json.loads(raw)
        except (ValidationError, ValueError) as e:
            logger.warning("cache_decode_failed", key=key, error=str(e))
            return None

    # ---- L1 -----------------------------------------------------------------------------

    def _l1_get(self, key: str) -> Optional[str]:
        now = self._clock()
        with self._lock:
            entry = self._l1.get(key)
            if entry is None:
                return None
            if entry.expires_at <= now:
                self._l1_drop(key)
                return None
            self._l1.move_to_end(key)
            return entry.raw

    def _l1_put(self, key: str, raw: str, ttl: float) -> None:
        size = self._estimate_size(raw)
        if size > self.max_size_bytes:
            logger.warning("cache_entry_too_large", key=key, size=size)
            with self._lock:
                self._l1_drop(key)
            return
        now = self._clock()
        with self._lock:
            self._l1_drop(key)
            self._l1[key] = _Entry(raw=raw, expires_at=now + ttl, size=size)
            self._l1_bytes += size
            self._evict(now)

    def _l1_drop(self, key: str) -> None:
        # Caller holds the lock
        entry = self._l1.pop(key, None)
        if entry is not None:
            self._l1_bytes -= entry.size

    def _evict(self, now: float) -> None:
        # Caller holds the lock. Expired first, then least recently used.
        if self._l1_bytes <= self.max_size_bytes:
            return
        for key in [k for k, e in self._l1.items() if e.expires_at <= now]:
            self._l1_drop(key)
        while self._l1_bytes > self.max_size_bytes and self._l1:
            oldest = next(iter(self._l1))
            self._l1_drop(oldest)

    # ---- L2 -----------------------------------------------------------------------------

    async def _remote_get(self, key: str) -> Optional[Union[str, bytes]]:
        try:
            return await self._remote.get(self._remote_key(key))
        except Exception as e:
            logger.warning("redis_get_failed", key=key, error=str(e))
            return None

    async def _remote_set(self, key: str, raw: str, ttl: int) -> None:
        try:
            await self._remote.set(self._remote_key(key), raw, ex=int(ttl))
        except Exception as e:
            logger.warning("redis_set_failed", key=key, error=str(e))

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    # ---- statistics ---------------------------------------------------------------------

    def _record(self, tier: Optional[str]) -> None:
        with self._lock:
            if tier is None:
                self._misses += 1
            else:
                self._hits += 1
                if tier == MEMORY_TIER:
                    self._memory_hits += 1
                else:
                    self._redis_hits += 1

    def stats(self) -> CacheStatistics:
        with self._lock:
            return CacheStatistics(
                total_hits=self._hits,
                memory_hits=self._memory_hits,
                redis_hits=self._redis_hits,
                total_misses=self._misses,
                last_reset=self._last_reset,
            )

    # ---- public API ---------------------------------------------------------------------

    async def get(self, key: str, model: Optional[Type[M]] = None):
        """
        Look up a key in L1, then L2.

        Args:
            key: Cache key (e.g. "catalog:item:SKU123")
            model: Optional pydantic model to parse the cached JSON into

        Returns:
            Cached value, or None on a miss
        """
        if not self.enabled:
            self._record(None)
            return None

        tier = None
        value = None

        raw = self._l1_get(key)
        if raw is not None:
            value = self._decode(key, raw, model)
            if value is not None:
                tier = MEMORY_TIER
            else:
                with self._lock:
                    self._l1_drop(key)

        if tier is None and self._remote is not None:
            remote_raw = await self._remote_get(key)
            if remote_raw is not None:
                value = self._decode(key, remote_raw, model)
                if value is not None:
                    tier = REDIS_TIER
                    if isinstance(remote_raw, bytes):
                        remote_raw = remote_raw.decode("utf-8")
                    self._l1_put(key, remote_raw, self.default_ttl)

        self._record(tier)

        if tier is None:
            logger.debug("cache_miss", key=key)
            return None

        logger.debug("cache_hit", key=key, tier=tier)
        return value

    async def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[float] = None,
        remote_ttl: Optional[int] = None,
    ) -> None:
        """
        Store a value. L1 immediately, L2 in the background.

        Serialization failures are logged and the write is skipped.
        """
        if not self.enabled:
            return

        try:
            raw = self._encode(value)
        except (TypeError, ValueError) as e:
            logger.error("cache_serialization_failed", key=key, error=str(e))
            return

        self._l1_put(key, raw, ttl if ttl is not None else self.default_ttl)

        if self._remote is not None:
            self._spawn(
                self._remote_set(key, raw, remote_ttl if remote_ttl is not None else self.remote_default_ttl)
            )

    async def remove(self, key: str) -> None:
        with self._lock:
            self._l1_drop(key)
        if self._remote is not None:
            try:
                await self._remote.delete(self._remote_key(key))
            except Exception as e:
                logger.warning("redis_delete_failed", key=key, error=str(e))

    async def remove_prefix(self, prefix: str) -> int:
        """Drop every key starting with prefix from both tiers"""
        with self._lock:
            keys = [k for k in self._l1 if k.startswith(prefix)]
            for key in keys:
                self._l1_drop(key)
        removed = len(keys)

        if self._remote is not None:
            try:
                remote_keys = [k async for k in self._remote.scan_iter(match=f"{self._remote_key(prefix)}*")]
                if remote_keys:
                    await self._remote.delete(*remote_keys)
                removed = max(removed, len(remote_keys))
            except Exception as e:
                logger.warning("redis_prefix_delete_failed", prefix=prefix, error=str(e))

        return removed

    async def clear(self) -> None:
        """
        Flush this instance's keys from L2 and reset statistics.

        L1 is left to expire on its own TTLs.
        """
        if self._remote is not None:
            try:
                keys = [k async for k in self._remote.scan_iter(match=f"{self.instance_name}:*")]
                if keys:
                    await self._remote.delete(*keys)
                logger.info("redis_cache_flushed", keys_removed=len(keys))
            except Exception as e:
                logger.error("redis_flush_failed", error=str(e))

        with self._lock:
            self._hits = 0
            self._memory_hits = 0
            self._redis_hits = 0
            self._misses = 0
            self._last_reset = datetime.now(timezone.utc)

        logger.info("cache_cleared")

    async def drain(self) -> None:
        """Wait for in-flight L2 writes"""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        if self._remote is not None and hasattr(self._remote, "aclose"):
            await self._remote.aclose()


def create_cache(settings) -> TieredCache:
    """Build the cache from Settings, wiring Redis when enabled"""
    remote = None
    if settings.enable_caching and settings.use_redis:
        remote = redis.from_url(settings.redis_url, decode_responses=True)

    return TieredCache(
        remote,
        enabled=settings.enable_caching,
        max_size_mb=settings.cache_max_size_mb,
        default_ttl=settings.cache_default_ttl_seconds,
        remote_default_ttl=settings.redis_default_ttl_seconds,
        instance_name=settings.cache_instance_name,
    )
