"""Dirty-field tracking for an edit session.

A field is dirty when its current value differs from the baseline snapshot
taken when the session started (or when a record finished loading).  Only
dirty fields are written when an existing record is updated, which keeps
the payload small and avoids overwriting fields this session never touched.

Fields changed concurrently by other editors are not detected: there is no
version check between load and save.
"""

from __future__ import annotations

import copy
import dataclasses
from typing import Any, Iterable

from formsync.schema import AttachmentDescriptor


def deep_equal(a: Any, b: Any) -> bool:
    """Structural equality: ordered for sequences, key-set + values for mappings.

    ``True`` never equals ``1`` and ``False`` never equals ``0``.
    """
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b

    if isinstance(a, dict) and isinstance(b, dict):
        if a.keys() != b.keys():
            return False
        return all(deep_equal(a[k], b[k]) for k in a)

    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        if len(a) != len(b):
            return False
        return all(deep_equal(x, y) for x, y in zip(a, b))

    if dataclasses.is_dataclass(a) and dataclasses.is_dataclass(b):
        if type(a) is not type(b):
            return False
        return all(
            deep_equal(getattr(a, f.name), getattr(b, f.name))
            for f in dataclasses.fields(a)
        )

    if isinstance(a, (dict, list, tuple)) or isinstance(b, (dict, list, tuple)):
        return False

    return a == b


def snapshot(values: dict) -> dict:
    """Deep-copy form values; pending file handles are shared, not copied."""
    memo: dict[int, Any] = {}
    for value in values.values():
        for item in value if isinstance(value, list) else ():
            if isinstance(item, AttachmentDescriptor) and item.pending_file is not None:
                memo[id(item.pending_file)] = item.pending_file
    return copy.deepcopy(values, memo)


def mark_changed(dirty: Iterable[str], field: str, new_value: Any, baseline: dict) -> set[str]:
    """Return a new dirty set after ``field`` changed to ``new_value``.

    A field missing from ``baseline`` is compared against None.
    """
    updated = set(dirty)
    if deep_equal(new_value, baseline.get(field)):
        updated.discard(field)
    else:
        updated.add(field)
    return updated


class DirtyTracker:
    """Holds the baseline snapshot and the dirty set for one session."""

    def __init__(self, baseline: dict | None = None):
        self._baseline: dict = snapshot(baseline or {})
        self._dirty: set[str] = set()

    @property
    def baseline(self) -> dict:
        return self._baseline

    @property
    def dirty_fields(self) -> set[str]:
        return set(self._dirty)

    def is_dirty(self, field: str | None = None) -> bool:
        if field is None:
            return bool(self._dirty)
        return field in self._dirty

    def baseline_value(self, field: str) -> Any:
        return self._baseline.get(field)

    def mark_changed(self, field: str, new_value: Any) -> set[str]:
        self._dirty = mark_changed(self._dirty, field, new_value, self._baseline)
        return self.dirty_fields

    def reset(self, baseline: dict | None = None) -> set[str]:
        """Clear the dirty set, optionally taking a new baseline snapshot."""
        if baseline is not None:
            self._baseline = snapshot(baseline)
        self._dirty = set()
        return set()
