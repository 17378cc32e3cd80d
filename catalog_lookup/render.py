"""Fetch-and-render pipeline.

For every request code the pipeline searches all collections, picks a cover
for each hit and produces :class:`RenderInstruction` objects.  A front-end
delivers them through :meth:`Pipeline.deliver`, which tries the remote image
first and falls back to relaying the bytes from a temporary local file.
"""

from __future__ import annotations

import asyncio
import html
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal, Mapping, Protocol

from .client import ScraperClient
from .config import Settings
from .cover import CoverResolver, local_image
from .records import (
    CODE_FIELDS,
    DATE_FIELDS,
    LINK_FIELDS,
    PLACEHOLDER,
    POST_TIME_FIELDS,
    TID_FIELDS,
    TITLE_FIELDS,
    SearchHit,
    field_text,
    record_image,
)
from .search import Store, sample_collection, search_all_collections
from .sessions import Page, SessionStore
from .validate import is_image

log = logging.getLogger("catalog-lookup.render")

DEFAULT_RECOMMEND_COUNT = 10


class UnknownCategory(ValueError):
    """Recommendation keyword does not map to any collection."""

    def __init__(self, keyword: str, valid: list[str]):
        super().__init__(f"unknown category {keyword!r}")
        self.keyword = keyword
        self.valid = valid


class Frontend(Protocol):
    """What a chat front-end must offer to receive rendered results."""

    async def send_text(self, caption: str) -> None: ...

    async def send_photo(self, source: str | Path, caption: str) -> None: ...


@dataclass(frozen=True)
class RenderInstruction:
    kind: Literal["text", "photo"]
    caption: str
    image_url: str | None = None


# ── Formatting ──────────────────────────────────────────────────────────────


def escape(text: Any) -> str:
    if text is None or text == "":
        return PLACEHOLDER
    return html.escape(str(text), quote=False)


def format_hit(record: Mapping[str, Any], collection: str) -> str:
    code = escape(field_text(record, CODE_FIELDS))
    return "\n".join(
        [
            f"<b>★ Result: {code} ★</b>",
            f"<b>Title:</b> {escape(field_text(record, TITLE_FIELDS))}",
            f"<b>Code:</b> {code}",
            f"<b>Date:</b> {escape(field_text(record, DATE_FIELDS))}",
            f"<b>Posted:</b> {escape(field_text(record, POST_TIME_FIELDS))}",
            f"<b>tid:</b> {escape(field_text(record, TID_FIELDS))}",
            f"<b>Collection:</b> {escape(collection)}",
            f"<b>Magnet:</b> <code>{escape(field_text(record, LINK_FIELDS))}</code>",
        ]
    )


def format_not_found(code: str) -> str:
    return f"<b>ℹ️ Code: {escape(code)}</b>\n❌ Not found in any collection"


def format_recommendation(record: Mapping[str, Any]) -> str:
    return (
        f"<b>Code:</b> {escape(field_text(record, CODE_FIELDS))}\n"
        f"<b>Magnet:</b> <code>{escape(field_text(record, LINK_FIELDS))}</code>"
    )


def _instruction(caption: str, image_url: str | None) -> RenderInstruction:
    if image_url:
        return RenderInstruction("photo", caption, image_url)
    return RenderInstruction("text", caption)


# ── Pipeline ────────────────────────────────────────────────────────────────


class Pipeline:
    """Ties the fan-out search and the cover resolver to a front-end."""

    def __init__(
        self,
        store: Store,
        resolver: CoverResolver,
        client: ScraperClient,
        settings: Settings,
        sessions: SessionStore | None = None,
    ):
        self.store = store
        self.resolver = resolver
        self.client = client
        self.settings = settings
        if sessions is None:
            sessions = SessionStore(
                settings.session_ttl_ms, settings.session_capacity, settings.page_size
            )
        self.sessions = sessions

    async def search(self, code: str) -> list[SearchHit]:
        return await search_all_collections(
            self.store, code, self.settings.exclude_collections
        )

    async def render_hits(self, code: str, hits: list[SearchHit]) -> list[RenderInstruction]:
        """One instruction per hit, or a single "not found" one."""
        if not hits:
            cover = await self.resolver.resolve(code)
            return [_instruction(format_not_found(code), cover)]

        instructions = []
        for record, collection in hits:
            # Embedded image first; the resolver only runs without one.
            cover = record_image(record) or await self.resolver.resolve(code)
            instructions.append(_instruction(format_hit(record, collection), cover))
        return instructions

    async def render(self, code: str) -> list[RenderInstruction]:
        """Search *code* and render the results.

        Store errors propagate (``StoreUnavailable``); the front-end turns them
        into a "try again later" reply.
        """
        code = code.strip()
        return await self.render_hits(code, await self.search(code))

    async def recommend(
        self, keyword: str, n: int = DEFAULT_RECOMMEND_COUNT
    ) -> list[RenderInstruction]:
        """Random records from the collection mapped to *keyword*.

        *keyword* may be any part of a configured category name.
        """
        mapping = self.settings.recommend_collections
        category = next((name for name in mapping if keyword and keyword in name), None)
        if category is None:
            raise UnknownCategory(keyword, list(mapping))

        hits = await sample_collection(self.store, mapping[category], n)
        instructions = []
        for record, _ in hits:
            code = field_text(record, CODE_FIELDS)
            cover = None
            if code != PLACEHOLDER:
                cover = await self.resolver.resolve(code)
            instructions.append(_instruction(format_recommendation(record), cover))
        return instructions

    # ── Multi-code browsing ─────────────────────────────────────────────

    async def render_page(self, page: Page) -> list[RenderInstruction]:
        instructions = []
        for record, collection in page.hits:
            cover = record_image(record)
            code = field_text(record, CODE_FIELDS)
            if cover is None and code != PLACEHOLDER:
                cover = await self.resolver.resolve(code)
            instructions.append(_instruction(format_hit(record, collection), cover))
        return instructions

    async def browse(
        self, session_id: str, codes: list[str]
    ) -> tuple[Page, list[RenderInstruction]]:
        """Search several codes at once and open a paginated session."""
        codes = [c.strip() for c in codes if c.strip()]
        results = await asyncio.gather(*[self.search(code) for code in codes])
        hits = [hit for code_hits in results for hit in code_hits]
        page = self.sessions.start(session_id, hits)
        return page, await self.render_page(page)

    async def turn_page(
        self, session_id: str, delta: int
    ) -> tuple[Page | None, list[RenderInstruction]]:
        page = self.sessions.turn(session_id, delta)
        if page is None:
            return None, []
        return page, await self.render_page(page)

    # ── Delivery ────────────────────────────────────────────────────────

    async def deliver(self, frontend: Frontend, instruction: RenderInstruction) -> str:
        """Send one instruction; return the delivery path used.

        ``"remote"``: the front-end accepted the URL.  ``"local"``: the
        bytes were relayed from a temporary file.  ``"text"``: no image could
        be attached.
        """
        url = instruction.image_url
        if instruction.kind == "text" or not url:
            await frontend.send_text(instruction.caption)
            return "text"

        if await is_image(self.client, url):
            try:
                await frontend.send_photo(url, instruction.caption)
                log.info("sent remote cover %s", url)
                return "remote"
            except Exception as exc:
                log.warning("front-end rejected remote cover %s: %s", url, exc)

        # Some hosts refuse HEAD probes or hotlinking but serve a full GET.
        try:
            async with local_image(self.client, url, self.settings.tmp_dir) as path:
                await frontend.send_photo(path, instruction.caption)
            log.info("sent local cover %s", url)
            return "local"
        except Exception as exc:
            log.warning("local cover delivery failed for %s: %s", url, exc)

        await frontend.send_text(instruction.caption)
        return "text"

    async def handle(self, code: str, frontend: Frontend) -> int:
        """Render *code* and deliver every result; return the message count."""
        instructions = await self.render(code)
        for instruction in instructions:
            await self.deliver(frontend, instruction)
        return len(instructions)
