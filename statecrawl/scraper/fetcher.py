"""Async HTTP fetcher with linear-backoff retries and a browser identity."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Optional

import httpx

from statecrawl.scraper.errors import NetworkError
from statecrawl.scraper.models import FetchResult, PipelineConfig

logger = logging.getLogger(__name__)

_BROWSER_USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.1 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
]

_BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "zh-CN,zh;q=0.9,en;q=0.8",
    "Upgrade-Insecure-Requests": "1",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Cache-Control": "max-age=0",
}


async def _backoff(seconds: float) -> None:
    await asyncio.sleep(seconds)


class RetryingFetcher:
    """Issue GET requests, retrying transport and status failures.

    Safe to share between concurrently running tasks: each call only touches
    its own locals and the (thread- and task-safe) ``httpx.AsyncClient``.

    Args:
        config: Timeout, redirect limit, retry budget and backoff base
            (``request_delay_ms``).
        client: Optional pre-built client.  A client passed in is *not*
            closed by :meth:`aclose`.
    """

    def __init__(self, config: PipelineConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=config.timeout,
            follow_redirects=True,
            max_redirects=config.max_redirects,
            headers=_BROWSER_HEADERS,
        )

    async def __aenter__(self) -> "RetryingFetcher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client and not self._client.is_closed:
            await self._client.aclose()

    def user_agent(self) -> str:
        if self.config.use_random_user_agent:
            return random.choice(_BROWSER_USER_AGENTS)
        return self.config.user_agent or _BROWSER_USER_AGENTS[0]

    async def fetch(self, url: str, attempt: int = 0) -> FetchResult:
        """Fetch *url*, retrying up to ``max_retries`` attempts in total.

        Attempt *n* (zero-based) that fails waits ``request_delay * (n + 1)``
        before the next one.

        Raises:
            NetworkError: Once the retry budget is exhausted.
        """
        max_retries = self.config.max_retries
        while True:
            try:
                return await self._get(url)
            except httpx.HTTPError as exc:
                status = (
                    exc.response.status_code
                    if isinstance(exc, httpx.HTTPStatusError)
                    else None
                )
                message = str(exc) or type(exc).__name__
                logger.warning("Fetch failed (%d/%d) %s: %s",
                               attempt + 1, max_retries, url, message)
                if attempt < max_retries - 1:
                    await _backoff(self.config.request_delay * (attempt + 1))
                    attempt += 1
                    continue
                raise NetworkError(url, message, attempts=attempt + 1,
                                   status_code=status) from exc

    async def _get(self, url: str) -> FetchResult:
        response = await self._client.get(url, headers={"User-Agent": self.user_agent()})
        response.raise_for_status()
        logger.debug("Fetched %s (HTTP %d, %d chars)",
                     url, response.status_code, len(response.text))
        return FetchResult(url=url, body=response.text, status_code=response.status_code)
