"""Raw feed retrieval over HTTP."""

from __future__ import annotations

import logging

import httpx

from questfeed.config import DEFAULT_USER_AGENT, get_fetch_config
from questfeed.errors import FetchError

logger = logging.getLogger(__name__)


class FeedFetcher:
    """Single-shot GET of a feed document. Failures are not retried here."""

    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 30,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.user_agent = user_agent
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_config(cls, config: dict) -> FeedFetcher:
        cfg = get_fetch_config(config)
        return cls(user_agent=cfg["user_agent"], timeout=cfg["timeout"])

    async def fetch(self, url: str) -> bytes:
        """Return the body of `url`, raising FetchError on any transport failure."""
        headers = {"User-Agent": self.user_agent}
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                transport=self.transport,
            ) as client:
                resp = await client.get(url, headers=headers)
                resp.raise_for_status()
                return resp.content
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.debug("Fetch failed for %s: %s", url, exc)
            raise FetchError(url, exc) from exc
