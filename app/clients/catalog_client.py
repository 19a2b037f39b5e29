import logging
from typing import Optional

import httpx

from app.config import settings
from app.exceptions import UpstreamError

logger = logging.getLogger(__name__)


class CatalogClient:
    """Client for the catalog service's article endpoint."""

    def __init__(self, base_url: str | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self._base_url = (base_url or settings.CATALOG_SERVICE_URL).rstrip("/")
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers={"Accept": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get_article(self, article_id: str, token: str) -> dict | None:
        """
        Fetch article *article_id* on behalf of the caller's bearer *token*.

        Returns None when the catalog answers 404.  Transport failures and
        any other non-2xx status raise ``UpstreamError``.
        """
        client = await self._get_client()
        try:
            response = await client.get(
                f"/articles/{article_id}",
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as exc:
            logger.error("Catalog service unreachable for article %s: %s", article_id, exc)
            raise UpstreamError("Catalog service unavailable") from exc

        if response.status_code == 404:
            return None
        if response.is_error:
            logger.error(
                "Catalog service error for article %s: %s %s",
                article_id,
                response.status_code,
                response.text,
            )
            raise UpstreamError("Catalog service error", upstream_status=response.status_code)

        try:
            article = response.json()
        except ValueError as exc:
            raise UpstreamError("Catalog service returned invalid JSON") from exc
        if article is None:
            return None
        if not isinstance(article, dict):
            raise UpstreamError("Catalog service returned an unexpected article payload")
        return article or None

    async def is_article_enabled(self, article_id: str, token: str) -> bool:
        """True when the article exists and is not flagged ``enabled: false``."""
        article = await self.get_article(article_id, token)
        if not article:
            return False
        return article.get("enabled") is not False
