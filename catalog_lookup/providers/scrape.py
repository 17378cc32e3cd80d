"""HTML scraping providers.

:class:`SearchPageProvider` takes the cover straight from a search-results
page.  :class:`DetailPageProvider` follows the first search result to its
detail page and takes the cover from there.

Parsers are plain functions over HTML text so they can be tested without a
network.
"""

from __future__ import annotations

from typing import Sequence
from urllib.parse import quote

from bs4 import BeautifulSoup

from ..client import ScraperClient
from .base import CoverProvider, absolute_url

IMAGE_ATTRS = ("src", "data-src")


# ═══════════════════════════════════════════════════════════════════════════
# Parsers
# ═══════════════════════════════════════════════════════════════════════════


def select_url(
    html: str,
    selectors: Sequence[str],
    attrs: Sequence[str],
    base_url: str,
) -> str | None:
    """First URL found by trying *selectors* in order.

    For each selector only the first matching element is considered; its
    *attrs* are tried in order.  Relative URLs are resolved against
    *base_url*.
    """
    soup = BeautifulSoup(html, "lxml")
    for selector in selectors:
        el = soup.select_one(selector)
        if el is None:
            continue
        for attr in attrs:
            value = el.get(attr)
            if isinstance(value, list):
                value = value[0] if value else None
            url = absolute_url(value, base_url)
            if url:
                return url
    return None


def page_matches(html: str, markers: Sequence[tuple[str, str]]) -> bool:
    """True if any ``(selector, text)`` marker is present.

    An empty *text* means the selector matching at all is enough.
    """
    if not markers:
        return False
    soup = BeautifulSoup(html, "lxml")
    for selector, text in markers:
        for el in soup.select(selector):
            if not text or text in el.get_text():
                return True
    return False


def search_url(template: str, code: str, strip_dashes: bool = False) -> str:
    query = code.replace("-", "") if strip_dashes else code
    return template.format(code=quote(query, safe=""))


# ═══════════════════════════════════════════════════════════════════════════
# Providers
# ═══════════════════════════════════════════════════════════════════════════


class SearchPageProvider(CoverProvider):
    """Cover = first image matched on the search-results page."""

    def __init__(
        self,
        name: str,
        client: ScraperClient,
        url_template: str,
        image_selectors: Sequence[str],
        image_attrs: Sequence[str] = IMAGE_ATTRS,
        strip_dashes: bool = False,
        headers: dict | None = None,
    ):
        super().__init__(name, client)
        self._template = url_template
        self._selectors = tuple(image_selectors)
        self._attrs = tuple(image_attrs)
        self._strip_dashes = strip_dashes
        self._headers = headers

    async def _lookup(self, code: str) -> str | None:
        url = search_url(self._template, code, self._strip_dashes)
        html = await self._client.get_html(url, headers=self._headers)
        return select_url(html, self._selectors, self._attrs, url)


class DetailPageProvider(CoverProvider):
    """Search page → first result link → detail page → first image."""

    def __init__(
        self,
        name: str,
        client: ScraperClient,
        url_template: str,
        link_selectors: Sequence[str],
        image_selectors: Sequence[str],
        image_attrs: Sequence[str] = IMAGE_ATTRS,
        not_found_markers: Sequence[tuple[str, str]] = (),
        strip_dashes: bool = False,
        headers: dict | None = None,
    ):
        super().__init__(name, client)
        self._template = url_template
        self._link_selectors = tuple(link_selectors)
        self._image_selectors = tuple(image_selectors)
        self._attrs = tuple(image_attrs)
        self._not_found = tuple(not_found_markers)
        self._strip_dashes = strip_dashes
        self._headers = headers or {}

    async def _lookup(self, code: str) -> str | None:
        url = search_url(self._template, code, self._strip_dashes)
        html = await self._client.get_html(url, headers=self._headers or None)

        if page_matches(html, self._not_found):
            return None

        detail_url = select_url(html, self._link_selectors, ("href",), url)
        if not detail_url:
            return None

        detail_html = await self._client.get_html(
            detail_url, headers={**self._headers, "referer": url}
        )
        return select_url(detail_html, self._image_selectors, self._attrs, detail_url)
