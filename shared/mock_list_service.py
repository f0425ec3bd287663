"""In-memory list service for tests, demos, and offline development.

Holds list items, attachments, and raw field metadata in dicts.  Failures
can be injected per operation name (``"get_item"``, ``"add_item"``, ...) or
per attachment name, and every call is recorded in ``calls`` so tests can
assert on ordering.
"""

from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Any

from shared.list_service import ApiResponse, read_file_bytes


class MockListService:
    """A ``ListService`` backed by plain dicts."""

    def __init__(
        self,
        fail_operations: set[str] | None = None,
        fail_attachments: set[str] | None = None,
    ):
        self.fail_operations: set[str] = set(fail_operations or ())
        self.fail_attachments: set[str] = set(fail_attachments or ())
        self.calls: list[tuple] = []
        self._items: dict[str, dict[int, dict]] = {}
        self._attachments: dict[tuple[str, int], dict[str, dict]] = {}
        self._fields: dict[str, dict[str, dict]] = {}
        self._next_id = 1

    # -- Seeding ------------------------------------------------------------

    def add_field(self, list_name: str, raw: dict) -> None:
        """Register raw field metadata (as the remote would return it)."""
        self._fields.setdefault(list_name, {})[raw["InternalName"]] = dict(raw)

    def seed_item(self, list_name: str, record: dict) -> int:
        """Store a record and return its id (``record["Id"]`` if given)."""
        item_id = int(record.get("Id") or self._next_id)
        self._next_id = max(self._next_id, item_id + 1)
        stored = copy.deepcopy(record)
        stored["Id"] = item_id
        self._items.setdefault(list_name, {})[item_id] = stored
        return item_id

    def seed_attachment(
        self,
        list_name: str,
        item_id: int,
        name: str,
        content: bytes = b"",
        content_type: str = "application/octet-stream",
    ) -> None:
        self._attachments.setdefault((list_name, item_id), {})[name] = {
            "FileName": name,
            "ServerRelativeUrl": f"/Lists/{list_name}/Attachments/{item_id}/{name}",
            "FileSizeBytes": len(content),
            "ContentType": content_type,
            "content": content,
        }

    def item(self, list_name: str, item_id: int) -> dict | None:
        return self._items.get(list_name, {}).get(item_id)

    def attachment_names(self, list_name: str, item_id: int) -> list[str]:
        return list(self._attachments.get((list_name, item_id), {}))

    # -- Helpers ------------------------------------------------------------

    def _record(self, op: str, *args: Any) -> ApiResponse | None:
        self.calls.append((op, *args))
        if op in self.fail_operations:
            return ApiResponse.fail(f"Simulated failure: {op}", 500)
        return None

    @staticmethod
    def _listing_entry(att: dict) -> dict:
        return {k: v for k, v in att.items() if k != "content"}

    # -- ListService --------------------------------------------------------

    def get_item(
        self,
        list_name: str,
        item_id: int,
        list_url: str | None = None,
        field_names: list[str] | None = None,
    ) -> ApiResponse:
        failed = self._record("get_item", list_name, item_id)
        if failed:
            return failed
        record = self.item(list_name, item_id)
        if record is None:
            return ApiResponse.fail(f"Item {item_id} not found in {list_name}", 404)
        record = copy.deepcopy(record)
        if field_names:
            keep = set(field_names) | {"Id"}
            record = {k: v for k, v in record.items() if k in keep}
        return ApiResponse.ok(record)

    def get_field_metadata(
        self, list_name: str, field_name: str, list_url: str | None = None
    ) -> ApiResponse:
        failed = self._record("get_field_metadata", list_name, field_name)
        if failed:
            return failed
        fields = self._fields.get(list_name, {})
        raw = fields.get(field_name)
        if raw is None:
            raw = next((f for f in fields.values() if f.get("Title") == field_name), None)
        if raw is None:
            return ApiResponse.fail(f"Field {field_name} not found in {list_name}", 404)
        return ApiResponse.ok(dict(raw))

    def get_list_fields(self, list_name: str, list_url: str | None = None) -> ApiResponse:
        failed = self._record("get_list_fields", list_name)
        if failed:
            return failed
        return ApiResponse.ok([dict(f) for f in self._fields.get(list_name, {}).values()])

    def add_item(self, list_name: str, payload: dict, list_url: str | None = None) -> ApiResponse:
        failed = self._record("add_item", list_name, copy.deepcopy(payload))
        if failed:
            return failed
        now = datetime.now(timezone.utc).isoformat()
        record = {**copy.deepcopy(payload), "Created": now, "Modified": now}
        item_id = self.seed_item(list_name, record)
        return ApiResponse.ok(copy.deepcopy(self.item(list_name, item_id)), 201)

    def update_item(
        self, list_name: str, item_id: int, payload: dict, list_url: str | None = None
    ) -> ApiResponse:
        failed = self._record("update_item", list_name, item_id, copy.deepcopy(payload))
        if failed:
            return failed
        record = self.item(list_name, item_id)
        if record is None:
            return ApiResponse.fail(f"Item {item_id} not found in {list_name}", 404)
        record.update(copy.deepcopy(payload))
        record["Modified"] = datetime.now(timezone.utc).isoformat()
        return ApiResponse.ok(copy.deepcopy(record))

    def get_attachments(
        self, list_name: str, item_id: int, list_url: str | None = None
    ) -> ApiResponse:
        failed = self._record("get_attachments", list_name, item_id)
        if failed:
            return failed
        atts = self._attachments.get((list_name, item_id), {})
        return ApiResponse.ok([self._listing_entry(a) for a in atts.values()])

    def upload_attachment(
        self,
        list_name: str,
        item_id: int,
        file_handle: Any,
        name: str,
        list_url: str | None = None,
    ) -> ApiResponse:
        failed = self._record("upload_attachment", list_name, item_id, name)
        if failed:
            return failed
        if name in self.fail_attachments:
            return ApiResponse.fail(f"Simulated upload failure: {name}", 500)
        content = read_file_bytes(file_handle)
        self.seed_attachment(list_name, item_id, name, content)
        return ApiResponse.ok(self._listing_entry(self._attachments[(list_name, item_id)][name]))

    def delete_attachment(
        self, list_name: str, item_id: int, name: str, list_url: str | None = None
    ) -> ApiResponse:
        failed = self._record("delete_attachment", list_name, item_id, name)
        if failed:
            return failed
        if name in self.fail_attachments:
            return ApiResponse.fail(f"Simulated delete failure: {name}", 500)
        atts = self._attachments.get((list_name, item_id), {})
        if name not in atts:
            return ApiResponse.fail(f"Attachment {name} not found", 404)
        del atts[name]
        return ApiResponse.ok({"deleted": True, "file_name": name})
