"""Cover resolution with provider priority, validation, caching and retry."""

from __future__ import annotations

import asyncio
import logging
import os
import re
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Sequence

from .cache import CoverCache
from .client import ScraperClient
from .providers.base import CoverProvider
from .validate import is_image

log = logging.getLogger("catalog-lookup.cover")

# Anything smaller is an error page or a tracking pixel, not a cover.
MIN_IMAGE_BYTES = 100

_EXT_RE = re.compile(r"\.(jpe?g|png|gif|webp)(?:$|[?#])", re.IGNORECASE)


class CoverResolver:
    """Resolve a catalog code to a validated cover URL.

    Parameters
    ----------
    cache : CoverCache
        Shared, already loaded cover cache.
    providers : sequence of CoverProvider
        The chain, highest priority first.
    client : ScraperClient
        Used for the image probe.
    retries : int
        Default number of extra attempts after a first attempt yields nothing.
    """

    def __init__(
        self,
        cache: CoverCache,
        providers: Sequence[CoverProvider],
        client: ScraperClient,
        retries: int = 1,
    ):
        self.cache = cache
        self.providers = list(providers)
        self.client = client
        self.retries = retries

    async def resolve(self, code: str, retries: int | None = None) -> str | None:
        """Cached or freshly looked-up cover URL for *code*; ``None`` if none."""
        if not self.providers:
            return None

        cached = await self.cache.get(code)
        if cached:
            log.debug("cover cache hit %s", code)
            return cached

        retries = self.retries if retries is None else retries
        for attempt in range(retries + 1):
            url = await self._attempt(code)
            if url:
                await self.cache.put(code, url)
                return url
            if attempt < retries:
                log.info("no valid cover for %s, retry %d/%d", code, attempt + 1, retries)

        log.warning("no valid cover for %s", code)
        return None

    async def _attempt(self, code: str) -> str | None:
        results = await asyncio.gather(
            *[p.lookup(code) for p in self.providers], return_exceptions=True
        )
        # Declared order decides, not completion order.
        candidate = None
        for provider, result in zip(self.providers, results):
            if isinstance(result, BaseException):
                log.warning("[%s] lookup %s raised: %r", provider.name, code, result)
                continue
            if result:
                candidate = result
                log.debug("cover candidate for %s from %s: %s", code, provider.name, result)
                break

        if candidate is None:
            return None
        if not await is_image(self.client, candidate):
            log.info("cover candidate for %s is not an image: %s", code, candidate)
            return None
        return candidate


def image_suffix(url: str) -> str:
    m = _EXT_RE.search(url)
    return f".{m.group(1).lower()}" if m else ".jpg"


@asynccontextmanager
async def local_image(
    client: ScraperClient, url: str, tmp_dir: str | os.PathLike
) -> AsyncIterator[Path]:
    """Download *url* into a temporary file and yield its path.

    The file is removed when the block exits, whether it succeeded or not.
    Raises :class:`~catalog_lookup.client.FetchError` or ``ValueError`` when
    the download fails or is too small to be an image.
    """
    data = await client.get_bytes(url, headers={"referer": url})
    if len(data) < MIN_IMAGE_BYTES:
        raise ValueError(f"image too small ({len(data)} bytes): {url}")

    os.makedirs(tmp_dir, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix="cover_", suffix=image_suffix(url), dir=tmp_dir)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        yield Path(tmp)
    finally:
        if os.path.exists(tmp):
            os.unlink(tmp)
