import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Optional

from cachetools import TTLCache
from redis.asyncio import Redis, RedisError

from tracker.core.config import Settings

logger = logging.getLogger(__name__)

USERS = "users"
PROJECTS = "projects"
TASKS = "tasks"

NAMESPACES = (USERS, PROJECTS, TASKS)


class CacheLayer:
    """
    Namespaced two-tier cache shared by every service in the process.

    L1: Process-local TTLCache (fast, limited size)
    L2: Redis (shared, larger capacity), only when a DSN is configured

    Features:
    - Stampede protection with per-key locks
    - Write-wins: a load that started before a later put/evict of the same key
      (or an evict_all of its namespace) is returned but never stored
    - Graceful degradation when Redis is unavailable
    """

    def __init__(self, settings: Settings):
        self._settings = settings
        self._redis: Redis | None = None
        self._initialized = False
        self.l1: TTLCache = TTLCache(maxsize=settings.l1_maxsize, ttl=settings.l1_ttl_seconds)

        # Per-key locks for stampede protection. The TTL exceeds the
        # worst-case loader time so a lock never expires mid-load.
        self._locks: TTLCache = TTLCache(maxsize=10_000, ttl=300)

        # Monotonic write clock: last write tick per key and per namespace.
        self._clock = 0
        self._key_writes: TTLCache = TTLCache(maxsize=100_000, ttl=300)
        self._namespace_writes: dict[str, int] = {}

        self.stats = {
            "l1_hits": 0,
            "l2_hits": 0,
            "misses": 0,
            "errors": 0,
            "stale_skips": 0,
            "evictions": 0,
        }

    async def init_cache(self):
        """Connect to Redis if configured."""
        if self._initialized:
            return
        self._initialized = True

        if not self._settings.redis_dsn:
            logger.info("Cache layer initialized (L1 only)")
            return

        try:
            self._redis = Redis.from_url(
                self._settings.redis_dsn,
                encoding="utf-8",
                decode_responses=True,
                max_connections=self._settings.redis_pool_size,
                socket_connect_timeout=5,
                socket_keepalive=True,
                health_check_interval=30,
            )
            await self._redis.ping()
            logger.info("Cache layer initialized with Redis L2")
        except RedisError as e:
            logger.error("Redis initialization failed, running L1 only: %s", e)
            self._redis = None

    # ------------------------------------------------------------------
    # keys
    # ------------------------------------------------------------------
    @staticmethod
    def _check_namespace(namespace: str):
        if namespace not in NAMESPACES:
            raise ValueError(f"Unknown cache namespace: {namespace}")

    @staticmethod
    def _l1_key(namespace: str, key: Any) -> str:
        return f"{namespace}:{key}"

    def _l2_key(self, namespace: str, key: Any) -> str:
        return f"{self._settings.cache_namespace}{namespace}:{key}"

    def _serialize(self, value: Any) -> str:
        return json.dumps(value, default=str)

    def _deserialize(self, raw: str) -> Any:
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return raw

    # ------------------------------------------------------------------
    # write clock
    # ------------------------------------------------------------------
    def _tick(self) -> int:
        self._clock += 1
        return self._clock

    def _record_write(self, namespace: str, key: Any):
        self._key_writes[self._l1_key(namespace, key)] = self._tick()

    def _written_since(self, namespace: str, key: Any, since: int) -> bool:
        last_key_write = self._key_writes.get(self._l1_key(namespace, key), 0)
        last_ns_write = self._namespace_writes.get(namespace, 0)
        return max(last_key_write, last_ns_write) > since

    def _get_lock(self, l1_key: str) -> asyncio.Lock:
        return self._locks.setdefault(l1_key, asyncio.Lock())

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    async def get(
        self,
        namespace: str,
        key: Any,
        loader: Optional[Callable[[], Awaitable[Any]]] = None,
        l2_ttl: Optional[int] = None,
    ) -> Any:
        """
        Cache-aside read: L1 -> L2 -> loader.

        Args:
            namespace: One of users, projects, tasks
            key: Logical key inside the namespace
            loader: Async function returning the value on a miss
            l2_ttl: TTL for L2 in seconds (settings default if None)

        Returns:
            Cached or loaded value, or None. None is never cached.
        """
        self._check_namespace(namespace)
        await self.init_cache()
        l1_key = self._l1_key(namespace, key)

        value = await self._lookup(namespace, key)
        if value is not None:
            return value

        if loader is None:
            self.stats["misses"] += 1
            return None

        async with self._get_lock(l1_key):
            # Double-check after acquiring the lock
            value = await self._lookup(namespace, key)
            if value is not None:
                return value

            self.stats["misses"] += 1
            started = self._clock
            logger.debug("Loading from source key=%s", l1_key)
            value = await loader()
            if value is None:
                return None

            if self._written_since(namespace, key, started):
                # A write landed while we were loading; our value may be stale.
                self.stats["stale_skips"] += 1
                logger.debug("Discarding stale load key=%s", l1_key)
                return value

            await self._set_both_layers(namespace, key, value, l2_ttl)
            return value

    async def put(self, namespace: str, key: Any, value: Any, l2_ttl: Optional[int] = None):
        """Write-through replacement of a single entry."""
        self._check_namespace(namespace)
        await self.init_cache()
        self._record_write(namespace, key)
        await self._set_both_layers(namespace, key, value, l2_ttl)

    async def evict(self, namespace: str, key: Any):
        """Delete one entry from both layers."""
        self._check_namespace(namespace)
        await self.init_cache()
        self._record_write(namespace, key)

        self.l1.pop(self._l1_key(namespace, key), None)
        self.stats["evictions"] += 1

        if self._redis:
            try:
                await self._redis.delete(self._l2_key(namespace, key))
            except RedisError as e:
                logger.error("Redis DELETE error key=%s: %s", self._l1_key(namespace, key), e)
                self.stats["errors"] += 1

    async def evict_all(self, namespace: str):
        """Delete every entry of a namespace from both layers."""
        self._check_namespace(namespace)
        await self.init_cache()
        self._namespace_writes[namespace] = self._tick()

        prefix = f"{namespace}:"
        stale = [k for k in list(self.l1.keys()) if k.startswith(prefix)]
        for k in stale:
            self.l1.pop(k, None)
        self.stats["evictions"] += len(stale)

        if self._redis:
            await self._delete_pattern(self._l2_key(namespace, "*"))

        logger.debug("Evicted namespace=%s l1_entries=%d", namespace, len(stale))

    async def clear_all(self):
        for namespace in NAMESPACES:
            await self.evict_all(namespace)

    async def close(self):
        """Graceful shutdown of cache connections."""
        if self._redis:
            try:
                await self._redis.aclose()
                logger.info("Redis connection closed")
            except RedisError as e:
                logger.error("Error closing Redis: %s", e)
            self._redis = None

    def get_stats(self) -> dict:
        total = self.stats["l1_hits"] + self.stats["l2_hits"] + self.stats["misses"]
        per_namespace = {ns: 0 for ns in NAMESPACES}
        for k in list(self.l1.keys()):
            ns = k.split(":", 1)[0]
            if ns in per_namespace:
                per_namespace[ns] += 1

        return {
            **self.stats,
            "namespaces": per_namespace,
            "l1_size": len(self.l1),
            "l1_maxsize": self.l1.maxsize,
            "l2_enabled": self._redis is not None,
            "hit_rate": (self.stats["l1_hits"] + self.stats["l2_hits"]) / total if total > 0 else 0,
        }

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------
    async def _lookup(self, namespace: str, key: Any) -> Any:
        l1_key = self._l1_key(namespace, key)
        if l1_key in self.l1:
            self.stats["l1_hits"] += 1
            return self.l1[l1_key]

        if self._redis:
            try:
                raw = await self._redis.get(self._l2_key(namespace, key))
            except RedisError as e:
                logger.error("Redis GET error key=%s: %s", l1_key, e)
                self.stats["errors"] += 1
                return None
            if raw is not None:
                self.stats["l2_hits"] += 1
                value = self._deserialize(raw)
                self.l1[l1_key] = value
                return value

        return None

    async def _set_both_layers(self, namespace: str, key: Any, value: Any, l2_ttl: int | None = None):
        self.l1[self._l1_key(namespace, key)] = value

        if self._redis:
            try:
                ttl = l2_ttl or self._settings.l2_ttl_seconds
                await self._redis.set(self._l2_key(namespace, key), self._serialize(value), ex=ttl)
            except RedisError as e:
                logger.error("Redis SET error key=%s: %s", self._l1_key(namespace, key), e)
                self.stats["errors"] += 1

    async def _delete_pattern(self, pattern: str):
        try:
            cursor = 0
            deleted = 0
            while True:
                cursor, keys = await self._redis.scan(cursor, match=pattern, count=100)
                if keys:
                    await self._redis.delete(*keys)
                    deleted += len(keys)
                if cursor == 0:
                    break
            logger.debug("Pattern delete completed pattern=%s deleted=%d", pattern, deleted)
        except RedisError as e:
            logger.error("Pattern delete error pattern=%s: %s", pattern, e)
            self.stats["errors"] += 1
