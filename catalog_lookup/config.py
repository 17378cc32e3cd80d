"""Configuration for catalog-lookup.

Everything is read from environment variables.  ``MONGODB_URI`` is the only
required one; the rest fall back to the defaults below.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

PACKAGE_DIR = Path(__file__).resolve().parent
DEFAULT_CACHE_FILE = PACKAGE_DIR.parent / "data" / "cover_cache.json"

DEFAULT_EXCLUDE_COLLECTIONS = ("system.indexes", "system.views", "admin", "local")

# Chain order is the cover priority order.
DEFAULT_PROVIDERS = ("service", "dmm", "javdb", "sehuatang")

DEFAULT_SERVICE_URL = "https://tuymawvla.allixogiqs79.workers.dev/{code}"

# Keyword shown to users -> collection sampled by the recommend command.
DEFAULT_RECOMMEND_COLLECTIONS = {
    "高清中文字幕": "hd_chinese_subtitles",
    "素人有码系列": "EU_US_no_mosaic",
    "亚洲有码原创": "asia_codeless_originate",
    "亚洲无码原创": "asia_mosaic_originate",
    "动漫原创": "online_originate",
    "VR": "vr_video",
    "4K": "4k_video",
    "国产原创": "domestic_original",
    "欧美无码": "asia_codeless_originate",
    "三级写真": "three_levels_photo",
    "韩国主播": "vegan_with_mosaic",
}

MAX_CODE_LENGTH = 50

COVER_TTL_HOURS = 24
COVER_CACHE_CAPACITY = 1000
COVER_RETRIES = 1

LOOKUP_TIMEOUT = 5.0  # seconds, provider lookups and HEAD probes
FETCH_TIMEOUT = 10.0  # seconds, full image download

SESSION_TTL_MINUTES = 30
SESSION_CAPACITY = 200
PAGE_SIZE = 5


class ConfigError(Exception):
    """Missing or invalid configuration; fatal at startup."""


def _split(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


def _number(env: Mapping[str, str], key: str, default, cast):
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = cast(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from exc
    if value < 0:
        raise ConfigError(f"{key} must not be negative, got {raw!r}")
    return value


def _capacity(env: Mapping[str, str], key: str, default: int) -> int:
    value = _number(env, key, default, int)
    if value < 1:
        raise ConfigError(f"{key} must be at least 1, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    mongodb_uri: str
    exclude_collections: frozenset[str] = frozenset(DEFAULT_EXCLUDE_COLLECTIONS)
    allowed_ids: frozenset[str] = frozenset()
    providers: tuple[str, ...] = DEFAULT_PROVIDERS
    service_url: str = DEFAULT_SERVICE_URL
    cache_file: Path = DEFAULT_CACHE_FILE
    cover_ttl_hours: float = COVER_TTL_HOURS
    cover_cache_capacity: int = COVER_CACHE_CAPACITY
    cover_retries: int = COVER_RETRIES
    lookup_timeout: float = LOOKUP_TIMEOUT
    fetch_timeout: float = FETCH_TIMEOUT
    tmp_dir: Path = Path("/tmp")
    session_ttl_minutes: float = SESSION_TTL_MINUTES
    session_capacity: int = SESSION_CAPACITY
    page_size: int = PAGE_SIZE
    recommend_collections: Mapping[str, str] = field(
        default_factory=lambda: dict(DEFAULT_RECOMMEND_COLLECTIONS)
    )

    @property
    def cover_ttl_ms(self) -> int:
        return int(self.cover_ttl_hours * 3600 * 1000)

    @property
    def session_ttl_ms(self) -> int:
        return int(self.session_ttl_minutes * 60 * 1000)

    def is_allowed(self, user_id: object) -> bool:
        """Allow-list check; an empty list allows nobody."""
        return str(user_id) in self.allowed_ids


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build :class:`Settings` from *environ* (defaults to ``os.environ``).

    Raises :class:`ConfigError` when ``MONGODB_URI`` is unset or still holds a
    ``your_default_`` placeholder, or when a numeric variable does not parse
    or a capacity is below 1.
    """
    env = os.environ if environ is None else environ

    uri = env.get("MONGODB_URI", "").strip()
    if not uri or "your_default_" in uri:
        raise ConfigError("missing required environment variable MONGODB_URI")

    exclude = _split(env.get("EXCLUDE_COLLECTIONS")) or list(DEFAULT_EXCLUDE_COLLECTIONS)
    providers = _split(env.get("COVER_PROVIDERS"))
    if "COVER_PROVIDERS" not in env:
        providers = list(DEFAULT_PROVIDERS)

    cache_file = env.get("COVER_CACHE_FILE")
    tmp_dir = env.get("TMP_DIR") or env.get("DEFAULT_SAVE_DIR")

    return Settings(
        mongodb_uri=uri,
        exclude_collections=frozenset(exclude),
        allowed_ids=frozenset(_split(env.get("ALLOWED_IDS"))),
        providers=tuple(providers),
        service_url=env.get("COVER_SERVICE_URL") or DEFAULT_SERVICE_URL,
        cache_file=Path(cache_file) if cache_file else DEFAULT_CACHE_FILE,
        cover_ttl_hours=_number(env, "COVER_TTL_HOURS", COVER_TTL_HOURS, float),
        cover_cache_capacity=_capacity(env, "COVER_CACHE_CAPACITY", COVER_CACHE_CAPACITY),
        cover_retries=_number(env, "COVER_RETRIES", COVER_RETRIES, int),
        lookup_timeout=_number(env, "LOOKUP_TIMEOUT", LOOKUP_TIMEOUT, float),
        fetch_timeout=_number(env, "FETCH_TIMEOUT", FETCH_TIMEOUT, float),
        tmp_dir=Path(tmp_dir) if tmp_dir else Path("/tmp"),
        session_ttl_minutes=_number(env, "SESSION_TTL_MINUTES", SESSION_TTL_MINUTES, float),
        session_capacity=_capacity(env, "SESSION_CAPACITY", SESSION_CAPACITY),
        page_size=max(1, _number(env, "PAGE_SIZE", PAGE_SIZE, int)),
    )
