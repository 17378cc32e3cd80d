"""Tests for providers/: parsers, each provider strategy, registry."""

from __future__ import annotations

import httpx
import pytest

from catalog_lookup.providers import VALID_PROVIDERS, build_chain, create_provider
from catalog_lookup.providers.base import absolute_url
from catalog_lookup.providers.scrape import (
    DetailPageProvider,
    SearchPageProvider,
    page_matches,
    search_url,
    select_url,
)
from catalog_lookup.providers.service import ImageServiceProvider

from conftest import FakeProvider, image_handler


# ── Parsers ─────────────────────────────────────────────────────────────────


class TestSelectUrl:
    def test_first_selector_wins(self):
        html = '<div class="a"><img src="/one.jpg"></div><img class="b" src="/two.jpg">'
        url = select_url(html, ["img.b", ".a img"], ["src"], "https://site.test/search")
        assert url == "https://site.test/two.jpg"

    def test_falls_through_missing_selectors_and_attrs(self):
        html = '<img class="c" data-src="//cdn.test/c.jpg">'
        url = select_url(html, [".nope img", "img.c"], ["src", "data-src"], "https://site.test/")
        assert url == "https://cdn.test/c.jpg"

    def test_meta_content(self):
        html = '<html><head><meta property="og:image" content="https://x.test/og.jpg"></head></html>'
        url = select_url(html, ['meta[property="og:image"]'], ["src", "content"], "https://x.test/")
        assert url == "https://x.test/og.jpg"

    def test_nothing_found(self):
        assert select_url("<p>no results</p>", ["img"], ["src"], "https://x.test/") is None


def test_page_matches():
    html = '<div id="search">検索結果 0件</div>'
    assert page_matches(html, [("#search", "0件")])
    assert not page_matches(html, [("#search", "12件")])
    assert page_matches('<div class="dmm404"></div>', [(".dmm404", "")])
    assert not page_matches(html, [])


def test_search_url_quotes_and_strips():
    assert search_url("https://x.test/s/{code}/", "MIDV-076", strip_dashes=True) == "https://x.test/s/MIDV076/"
    assert search_url("https://x.test/?q={code}", "A B/C") == "https://x.test/?q=A%20B%2FC"


@pytest.mark.parametrize(
    "src, expected",
    [
        ("//img.test/a.jpg", "https://img.test/a.jpg"),
        ("/a.jpg", "https://site.test/a.jpg"),
        ("https://other.test/a.jpg", "https://other.test/a.jpg"),
        ("  ", None),
        (None, None),
    ],
)
def test_absolute_url(src, expected):
    assert absolute_url(src, "https://site.test/search?q=x") == expected


# ── Providers ───────────────────────────────────────────────────────────────


class TestImageServiceProvider:
    @pytest.mark.asyncio
    async def test_body_is_url(self, make_client):
        client = make_client(
            lambda r: httpx.Response(200, text="https://img.test/abc.jpg\n")
            if r.url.path == "/ABC-123"
            else httpx.Response(404)
        )
        provider = ImageServiceProvider("service", client, "https://svc.test/{code}")
        assert await provider.lookup("ABC-123") == "https://img.test/abc.jpg"

    @pytest.mark.asyncio
    async def test_non_url_body(self, make_client):
        client = make_client(lambda r: httpx.Response(200, text="not found"))
        provider = ImageServiceProvider("service", client, "https://svc.test/{code}")
        assert await provider.lookup("ABC-123") is None

    @pytest.mark.asyncio
    async def test_http_error_becomes_none(self, make_client):
        client = make_client(lambda r: httpx.Response(500))
        provider = ImageServiceProvider("service", client, "https://svc.test/{code}")
        assert await provider.lookup("ABC-123") is None

    @pytest.mark.asyncio
    async def test_transport_error_becomes_none(self, make_client):
        def boom(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        provider = ImageServiceProvider("service", make_client(boom), "https://svc.test/{code}")
        assert await provider.lookup("ABC-123") is None

    def test_template_needs_code(self):
        with pytest.raises(ValueError):
            ImageServiceProvider("service", None, "https://svc.test/")  # type: ignore[arg-type]


class TestSearchPageProvider:
    @pytest.mark.asyncio
    async def test_first_image(self, make_client):
        pages = {
            "https://db.test/search?q=ABC-123": (
                '<div><img class="video-cover" src="/covers/abc.jpg">'
                '<img class="video-cover" src="/covers/other.jpg"></div>'
            )
        }
        provider = SearchPageProvider(
            "db", make_client(image_handler(pages=pages)), "https://db.test/search?q={code}",
            image_selectors=("img.video-cover",),
        )
        assert await provider.lookup("ABC-123") == "https://db.test/covers/abc.jpg"

    @pytest.mark.asyncio
    async def test_missing_markup(self, make_client):
        pages = {"https://db.test/search?q=ABC-123": "<p>nothing</p>"}
        provider = SearchPageProvider(
            "db", make_client(image_handler(pages=pages)), "https://db.test/search?q={code}",
            image_selectors=("img.video-cover",),
        )
        assert await provider.lookup("ABC-123") is None


class TestDetailPageProvider:
    def _provider(self, client) -> DetailPageProvider:
        return DetailPageProvider(
            "forum",
            client,
            "https://forum.test/search?q={code}",
            link_selectors=(".xs3 a",),
            image_selectors=("#postlist .t_f img",),
            image_attrs=("file", "src"),
            not_found_markers=(("#search", "0件"),),
        )

    @pytest.mark.asyncio
    async def test_two_hops(self, make_client):
        seen = []
        pages = {
            "https://forum.test/search?q=ABC-123": '<h3 class="xs3"><a href="thread-1.html">ABC-123</a></h3>',
            "https://forum.test/thread-1.html": (
                '<div id="postlist"><div class="t_f">'
                '<img src="static/none.gif" file="https://img.test/abc.jpg"></div></div>'
            ),
        }
        handler = image_handler(pages=pages)

        def recording(request):
            seen.append((str(request.url), request.headers.get("referer")))
            return handler(request)

        provider = self._provider(make_client(recording))
        assert await provider.lookup("ABC-123") == "https://img.test/abc.jpg"
        assert seen[1] == ("https://forum.test/thread-1.html", "https://forum.test/search?q=ABC-123")

    @pytest.mark.asyncio
    async def test_no_result_link(self, make_client):
        pages = {"https://forum.test/search?q=ABC-123": "<p>no threads</p>"}
        provider = self._provider(make_client(image_handler(pages=pages)))
        assert await provider.lookup("ABC-123") is None

    @pytest.mark.asyncio
    async def test_not_found_marker_stops_early(self, make_client):
        pages = {
            "https://forum.test/search?q=ABC-123": (
                '<div id="search">0件</div><h3 class="xs3"><a href="thread-9.html">ad</a></h3>'
            )
        }
        calls = []
        handler = image_handler(pages=pages)

        def recording(request):
            calls.append(str(request.url))
            return handler(request)

        provider = self._provider(make_client(recording))
        assert await provider.lookup("ABC-123") is None
        assert calls == ["https://forum.test/search?q=ABC-123"]

    @pytest.mark.asyncio
    async def test_detail_page_down(self, make_client):
        pages = {"https://forum.test/search?q=ABC-123": '<h3 class="xs3"><a href="/t/1">x</a></h3>'}
        provider = self._provider(make_client(image_handler(pages=pages)))
        assert await provider.lookup("ABC-123") is None


# ── Registry ────────────────────────────────────────────────────────────────


class TestRegistry:
    def test_every_registered_provider_builds(self):
        chain = build_chain(VALID_PROVIDERS, client=None)  # type: ignore[arg-type]
        assert [p.name for p in chain] == list(VALID_PROVIDERS)

    def test_order_is_kept(self):
        chain = build_chain(["javdb", "service"], client=None)  # type: ignore[arg-type]
        assert [p.name for p in chain] == ["javdb", "service"]

    def test_unknown_name(self):
        with pytest.raises(ValueError, match="Unknown cover provider"):
            create_provider("nope", client=None)  # type: ignore[arg-type]

    def test_empty_chain(self):
        assert build_chain([], client=None) == []  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_lookup_never_raises():
    assert await FakeProvider("broken", "x", error=True).lookup("ABC-123") is None
