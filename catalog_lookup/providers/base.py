"""Abstract base class for cover providers.

Each provider (image service, DMM, JavDB, …) turns a catalog code into a
cover image URL.  Providers differ only in how they get there: asking a
configured image service, scraping a search-results page, or following a
search result to its detail page.

The public :meth:`CoverProvider.lookup` never raises.  Subclasses implement
:meth:`CoverProvider._lookup` and may let any error escape; it is logged
and turned into ``None`` here, so one broken upstream never takes down the
chain.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from urllib.parse import urljoin

from ..client import ScraperClient

log = logging.getLogger("catalog-lookup.providers")


class CoverProvider(ABC):
    """Abstract base for cover providers.

    Example::

        provider = SearchPageProvider("javdb", client, ...)
        url = await provider.lookup("ABC-123")   # str or None
    """

    def __init__(self, name: str, client: ScraperClient):
        self._name = name
        self._client = client

    @property
    def name(self) -> str:
        """Short identifier used in ``COVER_PROVIDERS`` (e.g. ``"dmm"``)."""
        return self._name

    async def lookup(self, code: str) -> str | None:
        """Return a cover URL for *code*, or ``None``."""
        try:
            url = await self._lookup(code)
        except Exception as exc:
            log.warning("[%s] lookup %s failed: %s", self._name, code, exc)
            return None
        if not url:
            log.debug("[%s] no cover for %s", self._name, code)
            return None
        log.debug("[%s] %s -> %s", self._name, code, url)
        return url

    @abstractmethod
    async def _lookup(self, code: str) -> str | None:
        """Provider specific lookup; may raise."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._name}>"


def absolute_url(src: str | None, base_url: str) -> str | None:
    """Resolve *src* against *base_url* (``//host/x`` and ``/x`` forms)."""
    if not src:
        return None
    src = src.strip()
    if not src:
        return None
    if src.startswith("//"):
        return f"https:{src}"
    return urljoin(base_url, src)
