"""Schema-less catalog records.

Records come straight out of MongoDB and follow no fixed schema: every
collection was imported from a different scrape.  Each logical field is
looked up under a short list of aliases; the first non-empty value wins.
"""

from __future__ import annotations

from typing import Any, Mapping, NamedTuple

PLACEHOLDER = "N/A"

CODE_FIELDS = ("number", "code", "serial", "id")
TITLE_FIELDS = ("title",)
DATE_FIELDS = ("date",)
POST_TIME_FIELDS = ("post_time",)
TID_FIELDS = ("tid",)
LINK_FIELDS = ("magnet", "link")
IMAGE_FIELDS = ("img", "cover", "image")


class SearchHit(NamedTuple):
    """A record together with the collection it was found in."""

    record: Mapping[str, Any]
    collection: str


def _first(record: Mapping[str, Any], fields: tuple[str, ...]) -> Any:
    for name in fields:
        value = record.get(name)
        if value is None or value == "" or value == []:
            continue
        return value
    return None


def field_text(record: Mapping[str, Any], fields: tuple[str, ...]) -> str:
    """Return the first present alias as text, or ``PLACEHOLDER``."""
    value = _first(record, fields)
    if value is None:
        return PLACEHOLDER
    return str(value)


def record_code(record: Mapping[str, Any]) -> str:
    return field_text(record, CODE_FIELDS)


def record_image(record: Mapping[str, Any]) -> str | None:
    """Embedded cover reference, if the record carries one.

    ``img`` is usually a list of URLs (first one is the cover) but some
    imports stored a bare string.
    """
    value = _first(record, IMAGE_FIELDS)
    if isinstance(value, (list, tuple)):
        value = next((v for v in value if isinstance(v, str) and v), None)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def code_query(code: str) -> dict:
    """Exact-match query over every code alias."""
    return {"$or": [{name: code} for name in CODE_FIELDS]}
