"""Shared async HTTP client for cover providers, probes and image fetches.

One :class:`ScraperClient` is created per process.  It caps concurrent
in-flight requests with a semaphore and turns transport errors and non-2xx
responses into :class:`FetchError`.
"""

from __future__ import annotations

import asyncio
import logging

import httpx

from .config import FETCH_TIMEOUT, LOOKUP_TIMEOUT

log = logging.getLogger("catalog-lookup.client")

HEADERS = {
    "user-agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/131.0.0.0 Safari/537.36"
    ),
    "accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "accept-language": "ja-JP,ja;q=0.9,zh-CN;q=0.8,en-US;q=0.7,en;q=0.6",
}

DEFAULT_MAX_CONCURRENT = 20


class FetchError(Exception):
    """Transport failure or unusable HTTP status."""


class NotFound(FetchError):
    """HTTP 404."""


class ScraperClient:
    """Async HTTP client with a concurrency cap and per-call timeouts.

    Parameters
    ----------
    lookup_timeout : float
        Seconds allowed for page lookups and ``HEAD`` probes.
    fetch_timeout : float
        Seconds allowed for full image downloads.
    max_concurrent : int
        Maximum in-flight requests across all callers.
    transport : httpx.AsyncBaseTransport | None
        Custom transport (tests pass an ``httpx.MockTransport``).
    """

    def __init__(
        self,
        lookup_timeout: float = LOOKUP_TIMEOUT,
        fetch_timeout: float = FETCH_TIMEOUT,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.lookup_timeout = lookup_timeout
        self.fetch_timeout = fetch_timeout
        self._sem = asyncio.Semaphore(max_concurrent)
        self._client = httpx.AsyncClient(
            headers=HEADERS,
            timeout=httpx.Timeout(lookup_timeout),
            follow_redirects=True,
            limits=httpx.Limits(
                max_connections=max_concurrent + 10,
                max_keepalive_connections=max_concurrent,
            ),
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> ScraperClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def request(
        self,
        method: str,
        url: str,
        headers: dict | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        async with self._sem:
            try:
                r = await self._client.request(
                    method,
                    url,
                    headers=headers,
                    timeout=timeout if timeout is not None else self.lookup_timeout,
                )
            except (httpx.HTTPError, httpx.InvalidURL) as exc:
                raise FetchError(f"{method} {url}: {exc!r}") from exc

        if r.status_code == 404:
            raise NotFound(f"Not found: {url}")
        if not r.is_success:
            raise FetchError(f"HTTP {r.status_code}: {url}")
        return r

    async def get_html(self, url: str, headers: dict | None = None) -> str:
        return (await self.request("GET", url, headers=headers)).text

    async def head(self, url: str, timeout: float | None = None) -> httpx.Response:
        return await self.request("HEAD", url, timeout=timeout)

    async def get_bytes(self, url: str, headers: dict | None = None) -> bytes:
        """Download a whole body (images) with the longer fetch timeout."""
        r = await self.request("GET", url, headers=headers, timeout=self.fetch_timeout)
        return r.content
