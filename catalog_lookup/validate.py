"""Image URL validation.

A candidate cover is trusted only if a ``HEAD`` probe answers 2xx with an
``image/*`` content type.  The body is never downloaded here.
"""

from __future__ import annotations

import logging

from .client import FetchError, ScraperClient

log = logging.getLogger("catalog-lookup.validate")


async def is_image(client: ScraperClient, url: str, timeout: float | None = None) -> bool:
    """True if *url* answers a ``HEAD`` with an image content type."""
    if not url or not url.startswith(("http://", "https://")):
        return False
    try:
        r = await client.head(url, timeout=timeout)
    except FetchError as exc:
        log.debug("probe %s failed: %s", url, exc)
        return False
    content_type = r.headers.get("content-type", "")
    if not content_type.lower().startswith("image/"):
        log.debug("probe %s: not an image (%r)", url, content_type)
        return False
    return True
