"""
Auth invalidation subscriber.

The auth service broadcasts ``{"message": "Bearer <token>"}`` on the
non-durable ``auth`` exchange when a token is revoked (logout, password
change, ...).  Each instance of this service evicts the token from its
cache so the next request re-verifies it upstream.
"""
import logging
import re

from app.cache import TokenCache
from app.config import settings
from app.event_bus import EventBus

logger = logging.getLogger(__name__)

_BEARER_PREFIX_RE = re.compile(r"^\s*Bearer\s+", re.IGNORECASE)


def extract_token(message: str) -> str:
    """Strip an optional ``Bearer`` prefix and surrounding whitespace."""
    return _BEARER_PREFIX_RE.sub("", message).strip()


class AuthInvalidationSubscriber:
    def __init__(self, bus: EventBus, cache: TokenCache) -> None:
        self._bus = bus
        self._cache = cache

    async def start(self) -> bool:
        """Subscribe to the auth topic.  Returns False if the broker is unreachable."""
        try:
            await self._bus.subscribe(settings.AUTH_TOPIC, self.handle, durable=False)
        except Exception as exc:
            logger.error("Auth invalidation subscription failed: %s", exc)
            return False
        return True

    async def handle(self, payload) -> None:
        message = payload.get("message") if isinstance(payload, dict) else None
        if not message or not isinstance(message, str):
            logger.debug("Ignoring auth event without a token: %r", payload)
            return

        token = extract_token(message)
        if not token:
            return

        removed = await self._cache.delete(token)
        logger.info("Token invalidated (cached entry %s)", "removed" if removed else "absent")
