"""Collection enumeration and fan-out search.

Every non-excluded collection is queried concurrently.  A collection that
fails is logged and contributes nothing; only failing to enumerate the
collections at all aborts the search.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable, Protocol

from .records import SearchHit, code_query

log = logging.getLogger("catalog-lookup.search")


class Store(Protocol):
    async def list_collections(self) -> list[str]: ...

    async def find(self, collection: str, query: dict) -> list[dict[str, Any]]: ...

    async def sample(self, collection: str, n: int) -> list[dict[str, Any]]: ...


async def list_collections(store: Store, exclude: Iterable[str] = ()) -> set[str]:
    """Names of every searchable collection.

    Store errors propagate: without the collection list there is nothing
    to search.
    """
    excluded = set(exclude)
    names = await store.list_collections()
    return {name for name in names if name not in excluded}


async def _search_one(store: Store, collection: str, query: dict) -> list[SearchHit]:
    try:
        docs = await store.find(collection, query)
    except Exception as exc:
        log.warning("search %s failed: %s", collection, exc)
        return []
    if docs:
        log.info("collection %s: %d hit(s)", collection, len(docs))
    return [SearchHit(doc, collection) for doc in docs]


async def search_all_collections(
    store: Store, code: str, exclude: Iterable[str] = ()
) -> list[SearchHit]:
    """Find *code* in every collection and merge the hits.

    Hits from one collection keep the store's order; no order is implied
    between collections.
    """
    collections = await list_collections(store, exclude)
    log.info("searching %r across %d collection(s)", code, len(collections))
    if not collections:
        return []

    query = code_query(code)
    results = await asyncio.gather(
        *[_search_one(store, name, query) for name in sorted(collections)]
    )
    return [hit for hits in results for hit in hits]


async def sample_collection(store: Store, collection: str, n: int = 10) -> list[SearchHit]:
    """*n* random records from *collection* (recommendations)."""
    docs = await store.sample(collection, n)
    return [SearchHit(doc, collection) for doc in docs]
