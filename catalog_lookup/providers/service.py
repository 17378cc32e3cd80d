"""Configured image service provider.

The service answers ``GET <template with code>`` with the cover URL as its
plain-text body.
"""

from __future__ import annotations

from urllib.parse import quote

from ..client import ScraperClient
from .base import CoverProvider


class ImageServiceProvider(CoverProvider):
    def __init__(self, name: str, client: ScraperClient, url_template: str):
        super().__init__(name, client)
        if "{code}" not in url_template:
            raise ValueError(f"service URL template has no {{code}}: {url_template!r}")
        self._template = url_template

    async def _lookup(self, code: str) -> str | None:
        url = self._template.format(code=quote(code, safe=""))
        body = (await self._client.get_html(url)).strip()
        if body.startswith("http"):
            return body
        return None
