"""Tests for formsync/dirty_tracker.py."""

from __future__ import annotations

import io

from formsync.dirty_tracker import DirtyTracker, deep_equal, mark_changed, snapshot
from formsync.schema import AttachmentDescriptor


class TestDeepEqual:
    def test_bool_never_equals_int(self):
        assert not deep_equal(True, 1)
        assert not deep_equal(0, False)
        assert deep_equal(True, True)

    def test_nested_dicts(self):
        assert deep_equal({"a": [1, {"b": 2}]}, {"a": [1, {"b": 2}]})
        assert not deep_equal({"a": 1}, {"a": 1, "b": None})

    def test_list_order_matters(self):
        assert not deep_equal([1, 2], [2, 1])

    def test_none_vs_empty(self):
        assert not deep_equal(None, "")
        assert not deep_equal(None, [])

    def test_dataclasses(self):
        a = AttachmentDescriptor(id="a.pdf", name="a.pdf")
        assert deep_equal(a, AttachmentDescriptor(id="a.pdf", name="a.pdf"))
        assert not deep_equal(a, AttachmentDescriptor(id="b.pdf", name="b.pdf"))


class TestSnapshot:
    def test_is_deep_copy(self):
        values = {"tags": ["a"]}
        copy = snapshot(values)
        values["tags"].append("b")
        assert copy == {"tags": ["a"]}

    def test_pending_file_handle_shared(self):
        handle = io.BytesIO(b"data")
        values = {"Attachments": [AttachmentDescriptor(name="x.txt", pending_file=handle)]}
        copy = snapshot(values)
        assert copy["Attachments"][0] is not values["Attachments"][0]
        assert copy["Attachments"][0].pending_file is handle


class TestMarkChanged:
    def test_pure_function(self):
        dirty = {"B"}
        result = mark_changed(dirty, "A", 2, {"A": 1})
        assert result == {"A", "B"}
        assert dirty == {"B"}

    def test_missing_baseline_compared_to_none(self):
        assert mark_changed(set(), "New", None, {}) == set()
        assert mark_changed(set(), "New", "x", {}) == {"New"}


class TestDirtyTracker:
    def test_set_then_revert(self):
        tracker = DirtyTracker({"A": 1, "B": "x"})
        assert tracker.mark_changed("A", 2) == {"A"}
        assert tracker.mark_changed("A", 1) == set()

    def test_is_dirty(self):
        tracker = DirtyTracker({"A": 1})
        tracker.mark_changed("A", 5)
        assert tracker.is_dirty()
        assert tracker.is_dirty("A")
        assert not tracker.is_dirty("B")

    def test_baseline_not_affected_by_caller_mutation(self):
        values = {"tags": ["a"]}
        tracker = DirtyTracker(values)
        values["tags"].append("b")
        assert tracker.mark_changed("tags", values["tags"]) == {"tags"}
        assert tracker.baseline_value("tags") == ["a"]

    def test_reset_with_new_baseline(self):
        tracker = DirtyTracker({"A": 1})
        tracker.mark_changed("A", 2)
        tracker.reset({"A": 2})
        assert tracker.dirty_fields == set()
        assert tracker.mark_changed("A", 2) == set()

    def test_dirty_fields_is_a_copy(self):
        tracker = DirtyTracker({})
        tracker.dirty_fields.add("X")
        assert tracker.dirty_fields == set()
