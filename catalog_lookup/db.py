"""MongoDB access for catalog-lookup.

A single :class:`CatalogStore` owns the client.  The connection is opened on
first use; concurrent first callers wait on a lock instead of each opening
their own client.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from pymongo import AsyncMongoClient
from pymongo.errors import PyMongoError

log = logging.getLogger("catalog-lookup.db")


class StoreUnavailable(Exception):
    """The backing store could not be reached or refused the operation."""


class CatalogStore:
    """Lazily connected handle on the catalog database.

    Parameters
    ----------
    uri : str
        MongoDB connection string.  The database is the URI's default one.
    server_timeout : float
        Seconds to wait for server selection before giving up.
    """

    def __init__(self, uri: str, server_timeout: float = 10.0):
        self._uri = uri
        self._server_timeout = server_timeout
        self._client: AsyncMongoClient | None = None
        self._db = None
        self._lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self._db is not None

    async def connect(self):
        """Open the client and ping the server, once."""
        if self._db is not None:
            return self._db
        async with self._lock:
            if self._db is not None:
                return self._db
            client: AsyncMongoClient = AsyncMongoClient(
                self._uri, serverSelectionTimeoutMS=int(self._server_timeout * 1000)
            )
            try:
                await client.admin.command("ping")
                db = client.get_default_database()
            except (PyMongoError, ValueError) as exc:
                await client.close()
                raise StoreUnavailable(f"cannot connect to MongoDB: {exc}") from exc
            self._client = client
            self._db = db
            log.info("MongoDB connected (%s)", db.name)
            return db

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
        self._client = None
        self._db = None

    async def __aenter__(self) -> CatalogStore:
        await self.connect()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ── Queries ─────────────────────────────────────────────────────────

    async def list_collections(self) -> list[str]:
        db = await self.connect()
        try:
            return await db.list_collection_names()
        except PyMongoError as exc:
            raise StoreUnavailable(f"cannot list collections: {exc}") from exc

    async def find(self, collection: str, query: dict) -> list[dict[str, Any]]:
        """Every document of *collection* matching *query*, in store order."""
        db = await self.connect()
        cursor = db[collection].find(query)
        return await cursor.to_list(length=None)

    async def sample(self, collection: str, n: int) -> list[dict[str, Any]]:
        """*n* random documents of *collection*."""
        db = await self.connect()
        try:
            cursor = await db[collection].aggregate([{"$sample": {"size": n}}])
            return await cursor.to_list(length=None)
        except PyMongoError as exc:
            raise StoreUnavailable(f"cannot sample {collection}: {exc}") from exc
