"""Provider registry and chain factory.

Usage::

    from catalog_lookup.providers import build_chain

    chain = build_chain(["service", "dmm", "javdb"], client)
    urls = [await p.lookup("ABC-123") for p in chain]

The order of names is the cover priority order; reordering or disabling a
provider is a configuration change only.
"""

from __future__ import annotations

from typing import Callable, Iterable

from ..client import ScraperClient
from ..config import DEFAULT_SERVICE_URL
from .base import CoverProvider
from .scrape import DetailPageProvider, SearchPageProvider
from .service import ImageServiceProvider

DMM_BASE_URL = "https://www.dmm.co.jp"
JAVDB_BASE_URL = "https://www.javdb.com"
SEHUATANG_BASE_URL = "https://sehuatang.org"


def _service(client: ScraperClient, service_url: str) -> CoverProvider:
    return ImageServiceProvider("service", client, service_url)


def _dmm(client: ScraperClient, service_url: str) -> CoverProvider:
    return SearchPageProvider(
        "dmm",
        client,
        DMM_BASE_URL + "/digital/videoa/-/search/=/searchstr={code}/",
        image_selectors=(".tmb img",),
    )


def _dmm_detail(client: ScraperClient, service_url: str) -> CoverProvider:
    return DetailPageProvider(
        "dmm-detail",
        client,
        DMM_BASE_URL + "/search/=/searchstr={code}/",
        link_selectors=(".t-box .t-item a", ".box-searchlist .item a"),
        image_selectors=(
            "#sample-video img",
            ".sample-image img",
            ".product-detail img",
            '[class*="image"] img',
            '[class*="cover"] img',
            '[class*="sample"] img',
        ),
        not_found_markers=((".dmm404", ""), ("#search", "0件")),
        strip_dashes=True,
        headers={"referer": DMM_BASE_URL + "/"},
    )


def _javdb(client: ScraperClient, service_url: str) -> CoverProvider:
    return SearchPageProvider(
        "javdb",
        client,
        JAVDB_BASE_URL + "/search?q={code}&f=all",
        image_selectors=("img.video-cover", 'meta[property="og:image"]'),
        image_attrs=("src", "data-src", "content"),
    )


def _sehuatang(client: ScraperClient, service_url: str) -> CoverProvider:
    return DetailPageProvider(
        "sehuatang",
        client,
        SEHUATANG_BASE_URL + "/search.php?mod=forum&srchtxt={code}",
        link_selectors=(".xs3 a",),
        image_selectors=("#postlist .t_f img",),
        image_attrs=("file", "src"),
    )


_REGISTRY: dict[str, Callable[[ScraperClient, str], CoverProvider]] = {
    "service": _service,
    "dmm": _dmm,
    "dmm-detail": _dmm_detail,
    "javdb": _javdb,
    "sehuatang": _sehuatang,
}

VALID_PROVIDERS = tuple(_REGISTRY.keys())


def create_provider(
    name: str, client: ScraperClient, service_url: str = DEFAULT_SERVICE_URL
) -> CoverProvider:
    """Instantiate a :class:`CoverProvider` by short name.

    Raises
    ------
    ValueError
        If *name* is not a registered provider.
    """
    if name not in _REGISTRY:
        valid = ", ".join(sorted(VALID_PROVIDERS))
        raise ValueError(f"Unknown cover provider {name!r}. Valid providers: {valid}")
    return _REGISTRY[name](client, service_url)


def build_chain(
    names: Iterable[str], client: ScraperClient, service_url: str = DEFAULT_SERVICE_URL
) -> list[CoverProvider]:
    """Providers for *names*, in the given (priority) order."""
    return [create_provider(name, client, service_url) for name in names]


__all__ = [
    "CoverProvider",
    "DetailPageProvider",
    "ImageServiceProvider",
    "SearchPageProvider",
    "VALID_PROVIDERS",
    "build_chain",
    "create_provider",
]
