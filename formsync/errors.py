"""Exceptions raised by the list form sync engine."""

from __future__ import annotations


class FormSyncError(Exception):
    """Base exception for sync engine errors."""

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class MappingConflictError(FormSyncError):
    """Raised when two remote fields map to the same form field."""

    def __init__(self, form_name: str, remote_names: list[str]):
        self.form_name = form_name
        self.remote_names = remote_names
        super().__init__(
            f"Form field '{form_name}' is mapped from more than one remote field",
            ", ".join(remote_names),
        )


class ListServiceError(FormSyncError):
    """A remote list call returned a failure result."""

    def __init__(
        self,
        message: str = "List service request failed",
        status_code: int | None = None,
        details: str | None = None,
    ):
        self.status_code = status_code
        super().__init__(message, details)

    def __str__(self) -> str:
        parts = [self.message]
        if self.status_code:
            parts.append(f"Status: {self.status_code}")
        if self.details:
            parts.append(self.details)
        return " - ".join(parts)


class LoadError(ListServiceError):
    """Loading a list item failed."""


class SaveError(ListServiceError):
    """Creating or updating a list item failed; attachments were not touched."""
