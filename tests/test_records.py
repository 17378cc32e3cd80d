"""Tests for records.py: alias lookup and embedded images."""

from __future__ import annotations

from catalog_lookup.records import (
    CODE_FIELDS,
    LINK_FIELDS,
    code_query,
    field_text,
    record_code,
    record_image,
)


def test_code_aliases_in_priority_order():
    assert record_code({"serial": "S-1", "code": "C-1"}) == "C-1"
    assert record_code({"id": 17}) == "17"
    assert record_code({"number": "", "code": "C-1"}) == "C-1"
    assert record_code({}) == "N/A"


def test_link_alias():
    assert field_text({"link": "magnet:?xt=1"}, LINK_FIELDS) == "magnet:?xt=1"


def test_record_image_variants():
    assert record_image({"img": ["https://a/1.jpg", "https://a/2.jpg"]}) == "https://a/1.jpg"
    assert record_image({"img": "https://a/1.jpg"}) == "https://a/1.jpg"
    assert record_image({"img": [], "cover": "https://a/c.jpg"}) == "https://a/c.jpg"
    assert record_image({"img": [None, ""]}) is None
    assert record_image({"cover": "   "}) is None
    assert record_image({}) is None


def test_code_query():
    query = code_query("ABC-123")
    assert query == {"$or": [{name: "ABC-123"} for name in CODE_FIELDS]}
