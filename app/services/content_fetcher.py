from __future__ import annotations

import httpx

from app.core.config import Settings
from app.core.logging import get_logger

logger = get_logger(__name__)

_USER_AGENT = "Mozilla/5.0 (compatible; ContentProvenanceBot/1.0)"


def placeholder_content(url: str) -> str:
    return f"Unable to fetch content from {url}. Sample content for analysis..."


class ContentFetcher:
    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.settings = settings
        self.transport = transport

    async def fetch(self, url: str) -> str:
        """Return the body of ``url`` as text, or a placeholder when it cannot be retrieved."""
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.settings.fetch_timeout_seconds),
                headers={"User-Agent": _USER_AGENT},
                follow_redirects=True,
                transport=self.transport,
            ) as client:
                response = await client.get(url)
        except (httpx.HTTPError, httpx.InvalidURL):
            logger.warning("content_fetch_failed", url=url, exc_info=True)
            return placeholder_content(url)

        if not response.is_success:
            logger.warning(
                "content_fetch_http_error",
                url=url,
                status_code=response.status_code,
                preview=response.text[:180],
            )
            return placeholder_content(url)

        logger.info("content_fetched", url=url, chars=len(response.text))
        return response.text
