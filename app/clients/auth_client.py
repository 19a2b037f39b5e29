import logging
from typing import Optional

import httpx

from app.config import settings
from app.exceptions import UpstreamError

logger = logging.getLogger(__name__)


class AuthClient:
    """Client for the auth service's ``/users/current`` endpoint."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = (base_url or settings.AUTH_SERVICE_URL).rstrip("/")
        self._timeout = settings.AUTH_TIMEOUT if timeout is None else timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                headers={"Accept": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get_current_user(self, authorization: str) -> dict:
        """
        Resolve the identity behind an ``Authorization`` header value.

        Raises ``UpstreamError`` carrying the auth service's status code and
        ``error`` message when it rejects the token, or with no status when
        it cannot be reached in time.
        """
        client = await self._get_client()
        try:
            response = await client.get("/users/current", headers={"Authorization": authorization})
        except httpx.TimeoutException as exc:
            logger.error("Auth service timed out after %.1fs", self._timeout)
            raise UpstreamError("Auth service timeout") from exc
        except httpx.HTTPError as exc:
            logger.error("Auth service unreachable: %s", exc)
            raise UpstreamError("Auth service unavailable") from exc

        if response.is_error:
            message = "Invalid or expired token"
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict) and body.get("error"):
                message = body["error"]
            logger.info("Auth verification rejected: %s %s", response.status_code, message)
            raise UpstreamError(message, upstream_status=response.status_code)

        return response.json()
