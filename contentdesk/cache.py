import hashlib
import json
import logging

import redis.asyncio as redis

from contentdesk.config import settings

logger = logging.getLogger(__name__)


class ResponseCache:
    """
    Cache-aside store for read endpoints, backed by Redis.

    Keys are grouped into namespaces (currently only ``articles``).  Each
    namespace has a generation counter that is folded into every key, so a
    write invalidates the whole namespace with a single ``INCR`` instead of
    scanning for keys; stale generations simply age out through their TTL.

    Every method tolerates Redis being absent or failing: reads miss and
    writes are skipped, so the API keeps working without a cache.
    """

    def __init__(self) -> None:
        self._redis: redis.Redis | None = None
        self._hits = 0
        self._misses = 0

    async def connect(self) -> None:
        self._redis = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        try:
            await self._redis.ping()
            logger.info("Redis connected: %s", settings.REDIS_URL)
        except Exception as exc:  # pragma: no cover
            logger.warning("Redis unavailable, caching disabled: %s", exc)
            await self._redis.aclose()
            self._redis = None

    async def disconnect(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    async def _generation(self, namespace: str) -> str:
        value = await self._redis.get(f"{namespace}:gen")
        return value or "0"

    async def key(self, namespace: str, kind: str, params: dict) -> str | None:
        """Build a key for *params* in the namespace's current generation."""
        if not self._redis:
            return None
        try:
            generation = await self._generation(namespace)
        except Exception as exc:
            logger.debug("Cache generation lookup failed for %r: %s", namespace, exc)
            return None
        digest = hashlib.sha1(
            json.dumps(params, sort_keys=True, default=str).encode()
        ).hexdigest()[:16]
        return f"{namespace}:{generation}:{kind}:{digest}"

    # ------------------------------------------------------------------
    # Reads / writes
    # ------------------------------------------------------------------

    async def get(self, key: str | None):
        if not self._redis or key is None:
            self._misses += 1
            return None
        try:
            data = await self._redis.get(key)
        except Exception as exc:
            logger.debug("Cache GET error for key=%r: %s", key, exc)
            data = None
        if data is None:
            self._misses += 1
            return None
        self._hits += 1
        return json.loads(data)

    async def set(self, key: str | None, value, ttl: int | None = None) -> None:
        if not self._redis or key is None:
            return
        try:
            await self._redis.set(key, json.dumps(value, default=str), ex=ttl)
        except Exception as exc:
            logger.debug("Cache SET error for key=%r: %s", key, exc)

    async def invalidate(self, *namespaces: str) -> None:
        """Retire the current generation of each namespace."""
        if not self._redis:
            return
        for namespace in namespaces:
            try:
                await self._redis.incr(f"{namespace}:gen")
            except Exception as exc:
                logger.debug("Cache invalidation failed for %r: %s", namespace, exc)

    @property
    def stats(self) -> dict:
        total = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total * 100, 1) if total > 0 else 0.0,
        }


# Module-level singleton shared across all request handlers.
cache = ResponseCache()
