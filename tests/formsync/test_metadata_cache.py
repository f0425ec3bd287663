"""Tests for formsync/metadata_cache.py."""

from __future__ import annotations

from formsync.metadata_cache import FieldMetadataCache, list_identity
from formsync.schema import FieldMetadata, NormalizedType


def _meta(name: str) -> FieldMetadata:
    return FieldMetadata(internal_name=name, normalized_type=NormalizedType.TEXT)


class TestFieldMetadataCache:
    def test_fetches_once(self):
        cache = FieldMetadataCache()
        calls = []

        def fetch():
            calls.append(1)
            return _meta("Title")

        first = cache.get_or_fetch("Cases", "Title", fetch)
        second = cache.get_or_fetch("Cases", "Title", fetch)
        assert first is second
        assert len(calls) == 1

    def test_none_result_not_cached(self):
        cache = FieldMetadataCache()
        assert cache.get_or_fetch("Cases", "Missing", lambda: None) is None
        assert len(cache) == 0

    def test_list_url_is_part_of_identity(self):
        cache = FieldMetadataCache()
        cache.put("Cases", "Title", _meta("a"), list_url="https://x/sites/a")
        cache.put("Cases", "Title", _meta("b"), list_url="https://x/sites/b")
        assert cache.get("Cases", "Title", "https://x/sites/a").internal_name == "a"
        assert cache.get("Cases", "Title") is None
        assert (list_identity("Cases", "https://x/sites/b"), "Title") in cache

    def test_invalidate_field(self):
        cache = FieldMetadataCache()
        cache.put("Cases", "Title", _meta("Title"))
        cache.put("Cases", "Status", _meta("Status"))
        assert cache.invalidate("Cases", "Title") == 1
        assert cache.get("Cases", "Title") is None
        assert cache.get("Cases", "Status") is not None

    def test_invalidate_list_across_urls(self):
        cache = FieldMetadataCache()
        cache.put("Cases", "Title", _meta("x"), list_url="https://x/sites/a")
        cache.put("Cases", "Title", _meta("y"))
        cache.put("Clients", "Title", _meta("z"))
        assert cache.invalidate("Cases") == 2
        assert len(cache) == 1

    def test_invalidate_list_at_one_url(self):
        cache = FieldMetadataCache()
        cache.put("Cases", "Title", _meta("x"), list_url="https://x/sites/a")
        cache.put("Cases", "Title", _meta("y"))
        assert cache.invalidate("Cases", list_url="https://x/sites/a") == 1
        assert cache.get("Cases", "Title") is not None

    def test_invalidate_everything(self):
        cache = FieldMetadataCache()
        cache.put("Cases", "Title", _meta("x"))
        cache.put("Clients", "Title", _meta("y"))
        assert cache.invalidate() == 2

    def test_clear(self):
        cache = FieldMetadataCache()
        cache.put("Cases", "Title", _meta("x"))
        cache.clear()
        assert len(cache) == 0
