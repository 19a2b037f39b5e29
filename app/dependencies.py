import logging

import pydantic
from fastapi import Depends, Header, HTTPException, Request

from app.cache import cache
from app.clients.auth_client import AuthClient
from app.clients.catalog_client import CatalogClient
from app.config import settings
from app.event_bus import EventBus
from app.exceptions import UpstreamError
from app.schemas import CurrentUser

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Collaborators created in the lifespan and stored on app.state
# ---------------------------------------------------------------------------

def get_event_bus(request: Request) -> EventBus:
    return request.app.state.event_bus


def get_catalog_client(request: Request) -> CatalogClient:
    return request.app.state.catalog_client


def get_auth_client(request: Request) -> AuthClient:
    return request.app.state.auth_client


# ---------------------------------------------------------------------------
# Token verification
# ---------------------------------------------------------------------------

def get_bearer_token(authorization: str | None = Header(default=None)) -> str:
    """Return the raw token from ``Authorization: Bearer <token>``."""
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")
    parts = authorization.split(" ")
    token = parts[1].strip() if len(parts) > 1 else ""
    if not token:
        raise HTTPException(status_code=401, detail="Invalid token format")
    return token


async def get_current_user(
    token: str = Depends(get_bearer_token),
    authorization: str | None = Header(default=None),
    auth_client: AuthClient = Depends(get_auth_client),
) -> CurrentUser:
    """
    Resolve the caller's identity, cache-aside over the auth service.

    A cached identity is served for up to ``settings.AUTH_CACHE_TTL``
    seconds or until an invalidation event evicts it.  On a miss the
    auth service is asked with the caller's original header and its
    rejection status (401 when it cannot be reached) is passed through.
    """
    cached = await cache.get(token)
    if cached:
        return CurrentUser.model_validate(cached)

    try:
        identity = await auth_client.get_current_user(authorization)
    except UpstreamError as exc:
        raise HTTPException(
            status_code=exc.upstream_status or 401,
            detail=exc.message if exc.upstream_status else "Invalid or expired token",
        )

    try:
        user = CurrentUser.model_validate(identity)
    except pydantic.ValidationError:
        logger.warning("Auth service returned an unusable identity payload")
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    await cache.set(token, identity, ttl=settings.AUTH_CACHE_TTL)
    return user


def require_roles(*roles: str):
    """
    Dependency factory: the caller must hold at least one of *roles*.

    With no roles any authenticated caller passes.

    Usage in a router::

        @router.patch("/{question_id}/answer")
        async def answer(user: CurrentUser = Depends(require_roles("admin"))):
            ...
    """

    async def dependency(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if roles and not any(role in user.permissions for role in roles):
            raise HTTPException(status_code=403, detail="Forbidden: insufficient permissions")
        return user

    return dependency
