"""Tests for shared/list_service.py and shared/mock_list_service.py."""

from __future__ import annotations

import io

import pytest

from shared.list_service import ApiResponse, ListService, read_file_bytes
from shared.mock_list_service import MockListService
from shared.sharepoint_client import SharePointListService


class TestApiResponse:
    def test_ok(self):
        resp = ApiResponse.ok({"Id": 1})
        assert resp.success
        assert resp.status_code == 200

    def test_fail(self):
        resp = ApiResponse.fail("nope", 404)
        assert not resp.success
        assert resp.error == "nope"
        assert resp.data is None


class TestReadFileBytes:
    def test_bytes(self):
        assert read_file_bytes(b"abc") == b"abc"
        assert read_file_bytes(bytearray(b"abc")) == b"abc"

    def test_bytes_io(self):
        assert read_file_bytes(io.BytesIO(b"abc")) == b"abc"

    def test_file_object_rewound(self, tmp_path):
        path = tmp_path / "f.bin"
        path.write_bytes(b"content")
        with path.open("rb") as f:
            f.read()
            assert read_file_bytes(f) == b"content"

    def test_unsupported(self):
        with pytest.raises(TypeError):
            read_file_bytes(123)


class TestProtocol:
    def test_implementations_satisfy_protocol(self):
        assert isinstance(MockListService(), ListService)
        assert isinstance(SharePointListService("https://x/sites/a"), ListService)


class TestMockListService:
    def test_seed_and_get(self):
        service = MockListService()
        item_id = service.seed_item("Cases", {"Title": "A"})
        resp = service.get_item("Cases", item_id)
        assert resp.data == {"Title": "A", "Id": item_id}

    def test_get_is_a_copy(self):
        service = MockListService()
        item_id = service.seed_item("Cases", {"Tags": ["a"]})
        service.get_item("Cases", item_id).data["Tags"].append("b")
        assert service.item("Cases", item_id)["Tags"] == ["a"]

    def test_field_names_filter(self):
        service = MockListService()
        item_id = service.seed_item("Cases", {"Title": "A", "Status": "Open"})
        assert service.get_item("Cases", item_id, field_names=["Title"]).data == {"Title": "A", "Id": item_id}

    def test_missing_item(self):
        resp = MockListService().get_item("Cases", 5)
        assert not resp.success
        assert resp.status_code == 404

    def test_add_assigns_ids(self):
        service = MockListService()
        service.seed_item("Cases", {"Id": 10})
        resp = service.add_item("Cases", {"Title": "New"})
        assert resp.status_code == 201
        assert resp.data["Id"] == 11
        assert "Created" in resp.data

    def test_update_merges(self):
        service = MockListService()
        item_id = service.seed_item("Cases", {"Title": "A", "Status": "Open"})
        service.update_item("Cases", item_id, {"Status": "Closed"})
        assert service.item("Cases", item_id)["Title"] == "A"
        assert service.item("Cases", item_id)["Status"] == "Closed"

    def test_injected_operation_failure(self):
        service = MockListService(fail_operations={"update_item"})
        item_id = service.seed_item("Cases", {})
        resp = service.update_item("Cases", item_id, {"Title": "x"})
        assert not resp.success
        assert service.calls[-1][0] == "update_item"

    def test_attachments(self):
        service = MockListService(fail_attachments={"bad.pdf"})
        service.seed_item("Cases", {"Id": 1})
        assert service.upload_attachment("Cases", 1, io.BytesIO(b"x"), "a.pdf").success
        assert not service.upload_attachment("Cases", 1, b"x", "bad.pdf").success
        listing = service.get_attachments("Cases", 1).data
        assert listing == [{
            "FileName": "a.pdf",
            "ServerRelativeUrl": "/Lists/Cases/Attachments/1/a.pdf",
            "FileSizeBytes": 1,
            "ContentType": "application/octet-stream",
        }]
        assert service.delete_attachment("Cases", 1, "a.pdf").success
        assert service.delete_attachment("Cases", 1, "a.pdf").status_code == 404

    def test_field_metadata_by_title(self):
        service = MockListService()
        service.add_field("Cases", {"InternalName": "AssignedTo", "Title": "Assigned To"})
        assert service.get_field_metadata("Cases", "Assigned To").data["InternalName"] == "AssignedTo"
        assert not service.get_field_metadata("Cases", "Nope").success
        assert service.get_list_fields("Cases").data == [{"InternalName": "AssignedTo", "Title": "Assigned To"}]
