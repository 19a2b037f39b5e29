import json
import logging

import redis.asyncio as redis

from app.config import settings

logger = logging.getLogger(__name__)

TOKEN_KEY_PREFIX = "auth:"


def token_key(token: str) -> str:
    """Return the Redis key under which the identity for *token* is cached."""
    return f"{TOKEN_KEY_PREFIX}{token}"


class TokenCache:
    """
    Bearer token -> identity cache backed by Redis.

    Reads and writes degrade gracefully when Redis is unavailable: ``get``
    reports a miss and ``set`` is skipped, so token verification falls back
    to the auth service.  ``delete`` is the exception: an invalidation that
    silently fails would keep a revoked token alive, so errors propagate to
    the caller (the invalidation subscriber logs them).
    """

    def __init__(self) -> None:
        self._redis: redis.Redis | None = None
        self._hits: int = 0
        self._misses: int = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self, url: str | None = None) -> None:
        """Open the connection pool.  Called once at application startup."""
        url = url or settings.REDIS_URL
        self._redis = redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        # Ping to surface mis-configuration early (non-fatal).
        try:
            await self._redis.ping()
            logger.info("Redis connected: %s", url)
        except Exception as exc:  # pragma: no cover
            logger.warning("Redis ping failed, token cache degraded: %s", exc)

    async def disconnect(self) -> None:
        """Close the connection pool.  Called once at application shutdown."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    # ------------------------------------------------------------------
    # Token operations
    # ------------------------------------------------------------------

    async def get(self, token: str) -> dict | None:
        """Return the cached identity for *token*, or None on a miss / error."""
        if not self._redis:
            self._misses += 1
            return None
        try:
            data = await self._redis.get(token_key(token))
        except Exception as exc:
            logger.warning("Token cache GET failed: %s", exc)
            self._misses += 1
            return None
        if data is None:
            self._misses += 1
            return None
        try:
            identity = json.loads(data)
        except ValueError:
            logger.warning("Discarding undecodable token cache entry")
            self._misses += 1
            return None
        self._hits += 1
        return identity

    async def set(self, token: str, identity: dict, ttl: int | None = None) -> None:
        """
        Cache *identity* for *token* for *ttl* seconds
        (``settings.AUTH_CACHE_TTL`` when omitted).
        """
        if not self._redis:
            return
        ttl = settings.AUTH_CACHE_TTL if ttl is None else ttl
        try:
            await self._redis.set(token_key(token), json.dumps(identity, default=str), ex=ttl)
        except Exception as exc:
            logger.warning("Token cache SET failed: %s", exc)

    async def delete(self, token: str) -> bool:
        """
        Evict *token*.  Returns True when an entry was removed.

        Deleting an absent key is a no-op, so repeated invalidations of the
        same token are harmless.
        """
        if not self._redis:
            logger.warning("Token cache unavailable, cannot invalidate token")
            return False
        removed = await self._redis.delete(token_key(token))
        return bool(removed)

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    @property
    def stats(self) -> dict:
        """Return a snapshot of hit/miss counters."""
        total = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total * 100, 1) if total > 0 else 0.0,
        }


# Module-level singleton shared by token verification and the auth subscriber.
cache = TokenCache()
