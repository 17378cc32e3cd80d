#!/usr/bin/env python3
"""
catalog-lookup: resolve catalog codes to records and cover images.

Commands:
    lookup CODE [CODE ...]      Search every collection, print results + covers
    browse CODE [CODE ...]      Same, paginated (--page N)
    recommend KEYWORD           Random picks from the collection for KEYWORD
    cache show|prune|clear      Inspect or maintain the cover cache

Usage:
    MONGODB_URI=mongodb://localhost/catalog catalog-lookup lookup ABC-123
    catalog-lookup lookup ABC-123 XYZ-001 --user 12345
    catalog-lookup browse ABC-123 XYZ-001 --page 2
    catalog-lookup recommend VR -n 5
    catalog-lookup cache show
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path

from bs4 import BeautifulSoup
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .cache import CoverCache
from .client import ScraperClient
from .config import MAX_CODE_LENGTH, ConfigError, Settings, load_settings
from .cover import CoverResolver
from .db import CatalogStore, StoreUnavailable
from .providers import build_chain
from .render import Pipeline, RenderInstruction, UnknownCategory

log = logging.getLogger("catalog-lookup.cli")

console = Console()

TRY_AGAIN = "⚠️ Search failed, please try again later"


class ConsoleFrontend:
    """Front-end that prints rendered results to the terminal."""

    def __init__(self, console: Console):
        self.console = console
        self.sent = 0

    @staticmethod
    def _plain(caption: str) -> str:
        return BeautifulSoup(caption, "lxml").get_text()

    async def send_text(self, caption: str) -> None:
        self.sent += 1
        self.console.print(Panel(self._plain(caption), border_style="blue", expand=False))

    async def send_photo(self, source: str | Path, caption: str) -> None:
        self.sent += 1
        if isinstance(source, Path):
            label = f"🖼  local copy ({source.stat().st_size} bytes)"
        else:
            label = f"🖼  {source}"
        self.console.print(
            Panel(self._plain(caption), subtitle=label, border_style="green", expand=False)
        )


def _valid_codes(codes: list[str]) -> list[str]:
    valid = []
    for code in codes:
        code = code.strip()
        if not code or code.startswith("/") or len(code) > MAX_CODE_LENGTH:
            console.print(f"[yellow]Skipping invalid code {code!r}[/yellow]")
            continue
        valid.append(code)
    return valid


async def _deliver_all(
    pipeline: Pipeline, frontend: ConsoleFrontend, instructions: list[RenderInstruction]
) -> None:
    for instruction in instructions:
        await pipeline.deliver(frontend, instruction)


# ── Commands ────────────────────────────────────────────────────────────────


async def cmd_lookup(args, pipeline: Pipeline, frontend: ConsoleFrontend) -> int:
    for code in _valid_codes(args.codes):
        log.info("lookup %s", code)
        try:
            instructions = await pipeline.render(code)
        except StoreUnavailable as exc:
            log.error("lookup %s failed: %s", code, exc)
            await frontend.send_text(TRY_AGAIN)
            return 1
        await _deliver_all(pipeline, frontend, instructions)
    return 0


async def cmd_browse(args, pipeline: Pipeline, frontend: ConsoleFrontend) -> int:
    codes = _valid_codes(args.codes)
    session_id = "cli"
    try:
        page, instructions = await pipeline.browse(session_id, codes)
    except StoreUnavailable as exc:
        log.error("browse failed: %s", exc)
        await frontend.send_text(TRY_AGAIN)
        return 1
    if args.page > 1:
        page, instructions = await pipeline.turn_page(session_id, args.page - 1)

    await _deliver_all(pipeline, frontend, instructions)
    console.print(
        f"[dim]Page {page.number}/{page.total_pages} "
        f"({page.total_hits} hit(s) for {len(codes)} code(s))[/dim]"
    )
    return 0


async def cmd_recommend(args, pipeline: Pipeline, frontend: ConsoleFrontend) -> int:
    try:
        instructions = await pipeline.recommend(args.keyword, args.n)
    except UnknownCategory as exc:
        await frontend.send_text(
            f"❌ Unknown category. Use one of: {', '.join(exc.valid)}"
        )
        return 1
    except StoreUnavailable as exc:
        log.error("recommend %s failed: %s", args.keyword, exc)
        await frontend.send_text("⚠️ Recommendation failed, please try again later")
        return 1

    if not instructions:
        await frontend.send_text(f"❌ {args.keyword}: collection is empty")
        return 0
    await _deliver_all(pipeline, frontend, instructions)
    return 0


async def cmd_cache(args, settings: Settings) -> int:
    cache = CoverCache(settings.cache_file, settings.cover_ttl_ms, settings.cover_cache_capacity)
    cache.load()

    if args.action == "prune":
        removed = await cache.purge()
        console.print(f"Pruned {removed} entr(ies), {len(cache)} left")
        return 0
    if args.action == "clear":
        await cache.reset()
        console.print(f"Cleared {cache.path}")
        return 0

    table = Table(title=f"Cover cache ({len(cache)}/{cache.capacity})")
    table.add_column("Code", style="bold")
    table.add_column("Cached at")
    table.add_column("Fresh")
    table.add_column("URL", overflow="fold")
    for code, url, stamp in cache.items():
        when = datetime.fromtimestamp(stamp / 1000).strftime("%Y-%m-%d %H:%M")
        fresh = "[green]yes[/green]" if cache.is_fresh(stamp) else "[red]no[/red]"
        table.add_row(code, when, fresh, url)
    console.print(table)
    return 0


# ── Entry point ─────────────────────────────────────────────────────────────


async def run(args, settings: Settings) -> int:
    if args.command == "cache":
        return await cmd_cache(args, settings)

    # No user id is treated like an unknown one.
    if args.user is None or not settings.is_allowed(args.user):
        console.print("[red]❌ No permission[/red]")
        return 1

    cache = CoverCache(settings.cache_file, settings.cover_ttl_ms, settings.cover_cache_capacity)
    cache.load()

    async with ScraperClient(settings.lookup_timeout, settings.fetch_timeout) as client:
        try:
            providers = build_chain(settings.providers, client, settings.service_url)
        except ValueError as exc:
            console.print(f"[red]Configuration error:[/red] {exc}")
            return 1

        store = CatalogStore(settings.mongodb_uri)
        try:
            await store.connect()
        except StoreUnavailable as exc:
            console.print(f"[red]{exc}[/red]")
            return 1

        try:
            resolver = CoverResolver(cache, providers, client, settings.cover_retries)
            pipeline = Pipeline(store, resolver, client, settings)
            frontend = ConsoleFrontend(console)
            handler = {
                "lookup": cmd_lookup,
                "browse": cmd_browse,
                "recommend": cmd_recommend,
            }[args.command]
            return await handler(args, pipeline, frontend)
        finally:
            await store.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="catalog-lookup",
        description="Resolve catalog codes to records and cover images.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--user", help="Act as this user id; lookup, browse and recommend require one listed in ALLOWED_IDS")
    sub = parser.add_subparsers(dest="command", required=True)

    p_lookup = sub.add_parser("lookup", help="Search codes in every collection")
    p_lookup.add_argument("codes", nargs="+", metavar="CODE")

    p_browse = sub.add_parser("browse", help="Search several codes, paginated")
    p_browse.add_argument("codes", nargs="+", metavar="CODE")
    p_browse.add_argument("--page", type=int, default=1, help="Page to show (default: 1)")

    p_rec = sub.add_parser("recommend", help="Random picks for a category keyword")
    p_rec.add_argument("keyword")
    p_rec.add_argument("-n", type=int, default=10, help="How many (default: 10)")

    p_cache = sub.add_parser("cache", help="Inspect or maintain the cover cache")
    p_cache.add_argument("action", choices=("show", "prune", "clear"))

    return parser


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = load_settings()
    except ConfigError as exc:
        console.print(f"[red]Configuration error:[/red] {exc}")
        return 1

    try:
        return asyncio.run(run(args, settings))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        return 130


if __name__ == "__main__":
    sys.exit(main())
