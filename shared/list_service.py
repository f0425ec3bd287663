"""Contract between the sync engine and a remote list store.

Every call returns an ``ApiResponse`` instead of raising: transports catch
their own errors and report them as failed results carrying a status code
and message.  The engine decides which failures are fatal.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable


@dataclass
class ApiResponse:
    """Tagged success/failure result of a list service call."""

    success: bool
    data: Any = None
    error: str = ""
    status_code: int | None = None

    @classmethod
    def ok(cls, data: Any = None, status_code: int = 200) -> ApiResponse:
        return cls(success=True, data=data, status_code=status_code)

    @classmethod
    def fail(cls, error: str, status_code: int | None = 500) -> ApiResponse:
        return cls(success=False, error=error, status_code=status_code)


@runtime_checkable
class ListService(Protocol):
    """Operations the engine needs from a remote list store."""

    def get_item(
        self,
        list_name: str,
        item_id: int,
        list_url: str | None = None,
        field_names: list[str] | None = None,
    ) -> ApiResponse: ...

    def get_field_metadata(
        self, list_name: str, field_name: str, list_url: str | None = None
    ) -> ApiResponse: ...

    def get_list_fields(self, list_name: str, list_url: str | None = None) -> ApiResponse: ...

    def add_item(self, list_name: str, payload: dict, list_url: str | None = None) -> ApiResponse: ...

    def update_item(
        self, list_name: str, item_id: int, payload: dict, list_url: str | None = None
    ) -> ApiResponse: ...

    def get_attachments(
        self, list_name: str, item_id: int, list_url: str | None = None
    ) -> ApiResponse: ...

    def upload_attachment(
        self,
        list_name: str,
        item_id: int,
        file_handle: Any,
        name: str,
        list_url: str | None = None,
    ) -> ApiResponse: ...

    def delete_attachment(
        self, list_name: str, item_id: int, name: str, list_url: str | None = None
    ) -> ApiResponse: ...


def read_file_bytes(file_handle: Any) -> bytes:
    """Return the content of a pending file handle (bytes or binary file-like)."""
    if isinstance(file_handle, (bytes, bytearray)):
        return bytes(file_handle)
    if hasattr(file_handle, "getvalue"):
        return file_handle.getvalue()
    if hasattr(file_handle, "read"):
        if hasattr(file_handle, "seek"):
            file_handle.seek(0)
        return file_handle.read()
    raise TypeError(f"Unsupported file handle: {type(file_handle).__name__}")
