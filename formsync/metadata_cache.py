"""Per-session cache of normalized field metadata.

Field schemas do not change while a form is open, so each (list, field)
pair is fetched once.  The cache is an explicit object owned by the session
(or shared deliberately by the caller); entries are never evicted, only
invalidated on request.
"""

from __future__ import annotations

from typing import Callable

from formsync.schema import FieldMetadata


def list_identity(list_name: str, list_url: str | None = None) -> tuple[str, str]:
    """Identity of a list: its web/list URL (when known) plus its title."""
    return (list_url or "", list_name)


class FieldMetadataCache:
    """Field metadata keyed by ``(list identity, field name)``."""

    def __init__(self):
        self._entries: dict[tuple[tuple[str, str], str], FieldMetadata] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: tuple[tuple[str, str], str]) -> bool:
        return key in self._entries

    def get(self, list_name: str, field_name: str, list_url: str | None = None) -> FieldMetadata | None:
        return self._entries.get((list_identity(list_name, list_url), field_name))

    def put(
        self,
        list_name: str,
        field_name: str,
        metadata: FieldMetadata,
        list_url: str | None = None,
    ) -> None:
        self._entries[(list_identity(list_name, list_url), field_name)] = metadata

    def get_or_fetch(
        self,
        list_name: str,
        field_name: str,
        fetch: Callable[[], FieldMetadata | None],
        list_url: str | None = None,
    ) -> FieldMetadata | None:
        """Return the cached entry or call ``fetch`` and cache a non-None result."""
        cached = self.get(list_name, field_name, list_url)
        if cached is not None:
            return cached
        metadata = fetch()
        if metadata is not None:
            self.put(list_name, field_name, metadata, list_url)
        return metadata

    def invalidate(
        self,
        list_name: str | None = None,
        field_name: str | None = None,
        list_url: str | None = None,
    ) -> int:
        """Drop matching entries and return how many were removed.

        With no arguments every entry is dropped.  ``list_name`` restricts to
        one list (``list_url`` narrows it further); ``field_name`` restricts
        to one field name.
        """
        removed = 0
        for key in list(self._entries):
            identity, name = key
            if list_name is not None:
                if list_url is not None:
                    if identity != list_identity(list_name, list_url):
                        continue
                elif identity[1] != list_name:
                    continue
            if field_name is not None and name != field_name:
                continue
            del self._entries[key]
            removed += 1
        return removed

    def clear(self) -> None:
        self._entries.clear()
