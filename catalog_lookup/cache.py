"""Bounded TTL stores.

:class:`TTLStore` is an in-memory ``key -> value`` map where every entry
carries its write time (epoch milliseconds).  An entry is fresh while
``now - time < ttl``.  Pruning drops expired entries first, then evicts the
oldest entries until the store is back at capacity.

:class:`CoverCache` persists a ``TTLStore`` of cover URLs to a JSON file::

    {"ABC-123": {"url": "https://…/abc123pl.jpg", "time": 1718000000000}, …}

The file is rewritten after every mutation, under a lock, so two concurrent
writers can never interleave their write-then-persist sequences.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Callable, Generic, Iterator, TypeVar

log = logging.getLogger("catalog-lookup.cache")

V = TypeVar("V")

Clock = Callable[[], int]


def now_ms() -> int:
    return int(time.time() * 1000)


class TTLStore(Generic[V]):
    """In-memory map with per-entry TTL and a capacity bound.

    Parameters
    ----------
    ttl_ms : int
        Maximum entry age in milliseconds.
    capacity : int
        Maximum number of entries kept after a :meth:`put`.
    clock : callable, optional
        Returns the current time in epoch milliseconds.
    """

    def __init__(self, ttl_ms: int, capacity: int, clock: Clock | None = None):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.ttl_ms = ttl_ms
        self.capacity = capacity
        self._clock = clock or now_ms
        self._entries: dict[str, tuple[V, int]] = {}

    def now(self) -> int:
        return self._clock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))

    def items(self) -> list[tuple[str, V, int]]:
        """``(key, value, time)`` for every stored entry, expired or not."""
        return [(k, v, t) for k, (v, t) in self._entries.items()]

    def is_fresh(self, stamp: int, now: int | None = None) -> bool:
        now = self.now() if now is None else now
        return now - stamp < self.ttl_ms

    def get(self, key: str) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, stamp = entry
        if not self.is_fresh(stamp):
            return None
        return value

    def put(self, key: str, value: V, stamp: int | None = None) -> None:
        # Re-inserting moves the key to the end, matching its new timestamp.
        self._entries.pop(key, None)
        self._entries[key] = (value, self.now() if stamp is None else stamp)
        self.prune()

    def pop(self, key: str) -> V | None:
        entry = self._entries.pop(key, None)
        return entry[0] if entry else None

    def clear(self) -> None:
        self._entries.clear()

    def sweep(self, now: int | None = None) -> int:
        """Drop expired entries; return how many were dropped."""
        now = self.now() if now is None else now
        expired = [k for k, (_, t) in self._entries.items() if not self.is_fresh(t, now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def prune(self, now: int | None = None) -> int:
        """Drop expired entries, then the oldest ones above capacity."""
        removed = self.sweep(now)
        excess = len(self._entries) - self.capacity
        if excess > 0:
            oldest = sorted(self._entries.items(), key=lambda kv: kv[1][1])[:excess]
            for key, _ in oldest:
                del self._entries[key]
            removed += excess
        return removed


class CoverCache(TTLStore[str]):
    """Persisted ``code -> cover URL`` cache.

    Call :meth:`load` once at startup.  :meth:`get` and :meth:`put` are
    coroutines because any mutation they make is persisted before they
    return.
    """

    def __init__(
        self,
        path: str | os.PathLike,
        ttl_ms: int = 24 * 3600 * 1000,
        capacity: int = 1000,
        clock: Clock | None = None,
    ):
        super().__init__(ttl_ms, capacity, clock)
        self.path = Path(path)
        self._lock = asyncio.Lock()

    # ── Durability ──────────────────────────────────────────────────────

    def load(self) -> int:
        """Read the cache file; a missing or corrupt file gives an empty cache."""
        self._entries.clear()
        if not self.path.exists():
            log.info("no cover cache at %s, starting empty", self.path)
            return 0
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError(f"expected an object, got {type(data).__name__}")
        except (OSError, ValueError) as exc:
            log.error("cannot read cover cache %s: %s (starting empty)", self.path, exc)
            return 0

        skipped = 0
        for code, entry in data.items():
            url = entry.get("url") if isinstance(entry, dict) else None
            stamp = entry.get("time") if isinstance(entry, dict) else None
            if not isinstance(url, str) or not isinstance(stamp, (int, float)):
                skipped += 1
                continue
            self._entries[code] = (url, int(stamp))
        if skipped:
            log.warning("cover cache: skipped %d malformed entr(ies)", skipped)

        # Oldest first, so insertion order keeps following timestamps.
        self._entries = dict(sorted(self._entries.items(), key=lambda kv: kv[1][1]))
        if self.prune() or skipped:
            self.persist()
        log.info("cover cache loaded (%d entries)", len(self))
        return len(self)

    def persist(self) -> None:
        """Atomically rewrite the cache file."""
        self._write(self._payload())

    async def _save(self) -> None:
        # Snapshot on the loop, write off it; callers hold the lock.
        await asyncio.to_thread(self._write, self._payload())

    def _payload(self) -> dict[str, dict]:
        return {code: {"url": url, "time": stamp} for code, url, stamp in self.items()}

    def _write(self, payload: dict[str, dict]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".cover_cache.", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    # ── Async API ───────────────────────────────────────────────────────

    async def get(self, code: str) -> str | None:  # type: ignore[override]
        """Fresh cover URL for *code*, sweeping expired entries first."""
        if any(not self.is_fresh(t) for _, _, t in self.items()):
            async with self._lock:
                if self.sweep():
                    await self._save()
        return super().get(code)

    async def put(self, code: str, url: str) -> None:  # type: ignore[override]
        async with self._lock:
            super().put(code, url)
            await self._save()

    async def remove(self, code: str) -> bool:
        async with self._lock:
            if self.pop(code) is None:
                return False
            await self._save()
            return True

    async def purge(self) -> int:
        """Prune now and persist; return how many entries were dropped."""
        async with self._lock:
            removed = self.prune()
            if removed:
                await self._save()
            return removed

    async def reset(self) -> None:
        async with self._lock:
            self.clear()
            await self._save()
