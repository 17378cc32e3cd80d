"""Shared fixtures: fake store, fake providers, fake front-end, mocked HTTP.

No network and no MongoDB: HTTP goes through ``httpx.MockTransport`` and the
store is an in-memory dict of collections.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Callable

import httpx
import pytest

from catalog_lookup.cache import CoverCache
from catalog_lookup.client import ScraperClient
from catalog_lookup.config import Settings
from catalog_lookup.providers.base import CoverProvider
from catalog_lookup.records import CODE_FIELDS

# A payload big enough to pass the minimum image size check.
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 512


class FakeStore:
    """In-memory stand-in for :class:`catalog_lookup.db.CatalogStore`."""

    def __init__(self, collections: dict[str, list[dict]] | None = None):
        self.collections = collections or {}
        self.failing: set[str] = set()
        self.unavailable = False
        self.find_calls: list[str] = []

    async def list_collections(self) -> list[str]:
        if self.unavailable:
            from catalog_lookup.db import StoreUnavailable

            raise StoreUnavailable("store down")
        return list(self.collections)

    async def find(self, collection: str, query: dict) -> list[dict]:
        self.find_calls.append(collection)
        await asyncio.sleep(0)
        if collection in self.failing:
            raise RuntimeError(f"{collection} exploded")
        wanted = {next(iter(clause.values())) for clause in query["$or"]}
        return [
            doc
            for doc in self.collections.get(collection, [])
            if any(doc.get(name) in wanted for name in CODE_FIELDS)
        ]

    async def sample(self, collection: str, n: int) -> list[dict]:
        return list(self.collections.get(collection, []))[:n]


class FakeProvider(CoverProvider):
    """Provider returning a fixed answer after an optional delay."""

    def __init__(self, name: str, result: str | None, delay: float = 0.0, error: bool = False):
        super().__init__(name, client=None)  # type: ignore[arg-type]
        self.result = result
        self.delay = delay
        self.error = error
        self.calls = 0

    async def _lookup(self, code: str) -> str | None:
        self.calls += 1
        await asyncio.sleep(self.delay)
        if self.error:
            raise RuntimeError(f"{self.name} is down")
        return self.result


class FakeFrontend:
    def __init__(self, reject_remote: bool = False):
        self.reject_remote = reject_remote
        self.texts: list[str] = []
        self.photos: list[tuple[str | Path, str]] = []
        self.local_existed: list[bool] = []

    async def send_text(self, caption: str) -> None:
        self.texts.append(caption)

    async def send_photo(self, source, caption: str) -> None:
        if isinstance(source, Path):
            self.local_existed.append(source.exists())
        elif self.reject_remote:
            raise RuntimeError("wrong file identifier/HTTP URL specified")
        self.photos.append((source, caption))


class Clock:
    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


def image_handler(
    images: set[str] | None = None, pages: dict[str, str] | None = None
) -> Callable[[httpx.Request], httpx.Response]:
    """MockTransport handler serving *images* as JPEGs and *pages* as HTML."""
    images = images or set()
    pages = pages or {}

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url in images:
            return httpx.Response(
                200, headers={"content-type": "image/jpeg"}, content=JPEG_BYTES
            )
        if url in pages:
            return httpx.Response(
                200, headers={"content-type": "text/html"}, text=pages[url]
            )
        return httpx.Response(404)

    return handler


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def cache(tmp_path, clock) -> CoverCache:
    c = CoverCache(tmp_path / "cover_cache.json", ttl_ms=24 * 3600 * 1000, capacity=1000, clock=clock)
    c.load()
    return c


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        mongodb_uri="mongodb://localhost/catalog",
        cache_file=tmp_path / "cover_cache.json",
        tmp_dir=tmp_path / "tmp",
    )


@pytest.fixture
def make_client():
    def _make(handler) -> ScraperClient:
        return ScraperClient(transport=httpx.MockTransport(handler))

    return _make
