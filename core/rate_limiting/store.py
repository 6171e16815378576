"""
Quota counter stores.

A store answers one question atomically: "count one more hit for this key and
tell me the hit count and how long the current window still lasts". Windows
are fixed: they start at the first hit for a key and replenish fully once they
expire.

- RedisQuotaStore: shared across processes. INCR, PEXPIRE and PTTL run in a
  single Lua script so concurrent workers never race on window creation.
- MemoryQuotaStore: per-process fallback on Django's local-memory cache.

build_quota_store() picks Redis when it is configured and answers PING at
construction time, otherwise the in-process store. The choice is not revisited
per request: once RedisQuotaStore is selected, a later Redis outage surfaces
as redis.exceptions.RedisError from hit(), and the request fails with a 500
instead of being counted locally.
"""

import logging
import math
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

import redis
from django.conf import settings
from django.core.cache import caches
from django.core.cache.backends.base import BaseCache
from django_redis import get_redis_connection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Hit:
    count: int
    ms_before_next: int


class QuotaStore:
    shared = False

    def hit(self, key: str, window_ms: int) -> Hit:
        raise NotImplementedError

    def reset(self, key: str) -> None:
        raise NotImplementedError


class MemoryQuotaStore(QuotaStore):
    """
    In-process fixed-window counters kept in the ``RATE_LIMIT_CACHE_ALIAS``
    cache (a LocMemCache). Each key holds a counter and, under a sibling key,
    the moment its window ends. Both entries carry the window as cache timeout,
    so expired windows leave the cache and MAX_ENTRIES bounds its size.

    ``clock`` returns seconds and defaults to ``time.monotonic``; tests pass a
    fake clock to step over window boundaries.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        cache: Optional[BaseCache] = None,
    ) -> None:
        self._clock = clock
        self._cache = cache if cache is not None else caches[
            getattr(settings, "RATE_LIMIT_CACHE_ALIAS", "default")
        ]
        # Counters belong to this store instance only.
        self._prefix = f"quota:{uuid.uuid4().hex[:12]}"
        # Window start is read-then-write; the cache only locks single calls.
        self._lock = threading.Lock()

    def cache_keys(self, key: str) -> Tuple[str, str]:
        return f"{self._prefix}:{key}:count", f"{self._prefix}:{key}:expires"

    def hit(self, key: str, window_ms: int) -> Hit:
        now = self._clock()
        timeout = max(1, math.ceil(window_ms / 1000))
        count_key, expires_key = self.cache_keys(key)

        with self._lock:
            expires_at = self._cache.get(expires_key)
            if expires_at is None or expires_at <= now:
                expires_at = now + window_ms / 1000.0
                self._cache.set_many({count_key: 0, expires_key: expires_at}, timeout=timeout)
            try:
                count = self._cache.incr(count_key)
            except ValueError:
                # Counter culled while its window entry survived.
                self._cache.set(count_key, 1, timeout=timeout)
                count = 1

        return Hit(count=count, ms_before_next=max(0, int(round((expires_at - now) * 1000))))

    def reset(self, key: str) -> None:
        self._cache.delete_many(self.cache_keys(key))


_LUA_HIT = r"""
local key = KEYS[1]
local window_ms = tonumber(ARGV[1])

local count = redis.call("INCR", key)
local ttl = redis.call("PTTL", key)
if ttl < 0 then
  redis.call("PEXPIRE", key, window_ms)
  ttl = window_ms
end

return {count, ttl}
"""


class RedisQuotaStore(QuotaStore):
    shared = True

    def __init__(self, client: redis.Redis) -> None:
        self._client = client
        self._script = client.register_script(_LUA_HIT)

    def hit(self, key: str, window_ms: int) -> Hit:
        count, ttl = self._script(keys=[key], args=[window_ms])
        return Hit(count=int(count), ms_before_next=max(0, int(ttl)))

    def reset(self, key: str) -> None:
        self._client.delete(key)


def _redis_client(redis_url: str) -> redis.Redis:
    # Reuse the cache connection pool when django-redis backs the default cache.
    backend = settings.CACHES.get("default", {}).get("BACKEND", "")
    if backend.startswith("django_redis"):
        return get_redis_connection("default")
    return redis.Redis.from_url(
        redis_url,
        socket_timeout=getattr(settings, "RATE_LIMIT_REDIS_TIMEOUT", 2),
        socket_connect_timeout=getattr(settings, "RATE_LIMIT_REDIS_TIMEOUT", 2),
        health_check_interval=30,
    )


def build_quota_store(
    redis_url: Optional[str], client: Optional[redis.Redis] = None
) -> QuotaStore:
    """
    Return a Redis-backed store if Redis is reachable right now, else an
    in-process store. An outage at startup downgrades this instance to local
    accounting until the process restarts. An outage after startup is not
    downgraded: RedisQuotaStore.hit() propagates the RedisError.
    """
    if client is None and not redis_url:
        logger.info("Rate limiter: REDIS_URL not set, using in-process counters")
        return MemoryQuotaStore()

    try:
        client = client or _redis_client(redis_url)
        client.ping()
    except redis.exceptions.RedisError as e:
        logger.warning("Rate limiter: redis unavailable, using memory (%s)", e)
        return MemoryQuotaStore()

    logger.info("Rate limiter: using shared redis counters")
    return RedisQuotaStore(client)
