"""Paginated browsing of multi-code searches.

A session keeps the hits of one multi-code search and the page the user is
on.  Sessions live in a :class:`~catalog_lookup.cache.TTLStore`, so idle
ones expire and the total number is bounded; every page turn refreshes the
session's timestamp.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from .cache import Clock, TTLStore
from .records import SearchHit


@dataclass(frozen=True)
class Page:
    hits: list[SearchHit]
    number: int  # 1-based
    total_pages: int
    total_hits: int

    @property
    def has_next(self) -> bool:
        return self.number < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.number > 1


@dataclass(frozen=True)
class _Session:
    hits: list[SearchHit]
    page: int


class SessionStore:
    def __init__(
        self,
        ttl_ms: int,
        capacity: int,
        page_size: int = 5,
        clock: Clock | None = None,
    ):
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        self.page_size = page_size
        self._store: TTLStore[_Session] = TTLStore(ttl_ms, capacity, clock)

    def __len__(self) -> int:
        return len(self._store)

    def _page(self, session: _Session) -> Page:
        total = len(session.hits)
        total_pages = max(1, -(-total // self.page_size))
        start = (session.page - 1) * self.page_size
        return Page(
            hits=session.hits[start : start + self.page_size],
            number=session.page,
            total_pages=total_pages,
            total_hits=total,
        )

    def start(self, session_id: str, hits: list[SearchHit]) -> Page:
        """Open (or replace) *session_id* on its first page."""
        session = _Session(list(hits), 1)
        self._store.put(session_id, session)
        return self._page(session)

    def current(self, session_id: str) -> Page | None:
        session = self._store.get(session_id)
        return self._page(session) if session else None

    def turn(self, session_id: str, delta: int) -> Page | None:
        """Move *delta* pages; ``None`` if the session expired or is unknown.

        The page number is clamped to the valid range.
        """
        session = self._store.get(session_id)
        if session is None:
            return None
        total_pages = self._page(session).total_pages
        page = min(max(1, session.page + delta), total_pages)
        session = replace(session, page=page)
        self._store.put(session_id, session)
        return self._page(session)

    def next(self, session_id: str) -> Page | None:
        return self.turn(session_id, 1)

    def prev(self, session_id: str) -> Page | None:
        return self.turn(session_id, -1)

    def end(self, session_id: str) -> None:
        self._store.pop(session_id)
