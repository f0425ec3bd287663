"""Unified data models for the list form sync engine.

Dataclasses for field metadata, attachments, save payloads, operation
results, and sync log entries.  All models support JSON serialization via
to_dict/from_dict patterns.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class NormalizedType(str, Enum):
    """Closed set of semantic field types a remote list field can have."""

    TEXT = "Text"
    NOTE = "Note"
    NUMBER = "Number"
    CURRENCY = "Currency"
    DATETIME = "DateTime"
    CHOICE = "Choice"
    MULTI_CHOICE = "MultiChoice"
    BOOLEAN = "Boolean"
    LOOKUP = "Lookup"
    LOOKUP_MULTI = "LookupMulti"
    USER = "User"
    USER_MULTI = "UserMulti"
    ATTACHMENT = "Attachment"
    URL = "Url"
    CALCULATED = "Calculated"


@dataclass(frozen=True)
class FieldMetadata:
    """Schema description of one remote list field."""

    internal_name: str
    display_name: str = ""
    normalized_type: NormalizedType = NormalizedType.TEXT
    required: bool = False
    read_only: bool = False
    choices: tuple[str, ...] = ()
    lookup_list_id: str | None = None
    lookup_list_name: str | None = None
    lookup_field_name: str | None = None
    default_value: Any = None
    description: str | None = None
    max_length: int | None = None
    min: float | None = None
    max: float | None = None

    def to_dict(self) -> dict:
        d = asdict(self)
        d["normalized_type"] = self.normalized_type.value
        d["choices"] = list(self.choices)
        return d

    @classmethod
    def from_dict(cls, d: dict) -> FieldMetadata:
        data = {k: v for k, v in d.items() if k in cls.__dataclass_fields__}
        if "normalized_type" in data:
            data["normalized_type"] = NormalizedType(data["normalized_type"])
        if "choices" in data:
            data["choices"] = tuple(data["choices"] or ())
        return cls(**data)


@dataclass
class AttachmentDescriptor:
    """A file attached to a list item, persisted or waiting to be uploaded.

    An entry with ``pending_file`` and no ``id`` is a local addition that has
    not been saved yet; an entry with an ``id`` is already on the remote item.
    """

    name: str
    id: str | None = None
    size: int = 0
    content_type: str = ""
    url: str | None = None
    pending_file: Any = None   # bytes or a binary file-like object

    @property
    def is_pending(self) -> bool:
        return self.pending_file is not None and not self.id

    @property
    def key(self) -> str:
        """Name used when diffing attachment sets (id first, then name)."""
        return self.id or self.name

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "size": self.size,
            "content_type": self.content_type,
            "url": self.url,
        }

    @classmethod
    def from_dict(cls, d: dict) -> AttachmentDescriptor:
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})

    @classmethod
    def from_remote(cls, att: dict) -> AttachmentDescriptor:
        """Build a persisted descriptor from a remote attachment listing entry."""
        server_url = att.get("ServerRelativeUrl") or ""
        file_name = (
            att.get("FileName")
            or att.get("Name")
            or (server_url.rsplit("/", 1)[-1] if server_url else "")
            or "Unknown"
        )
        ident = att.get("FileName") or att.get("Name") or att.get("Id")
        return cls(
            id=str(ident) if ident is not None else None,
            name=file_name,
            size=int(att.get("FileSizeBytes") or att.get("Length") or 0),
            content_type=att.get("ContentType") or "",
            url=server_url or att.get("Url") or "",
        )


@dataclass
class RemotePayload:
    """Result of mapping form values back to the remote item shape."""

    payload: dict = field(default_factory=dict)
    files_to_upload: list[AttachmentDescriptor] = field(default_factory=list)
    files_to_delete: list[str] = field(default_factory=list)


@dataclass
class OperationResult:
    """Outcome of a single attachment upload or delete."""

    kind: str                  # upload | delete
    name: str
    success: bool
    error: str = ""
    status_code: int | None = None
    data: Any = None

    def to_dict(self) -> dict:
        d = asdict(self)
        d.pop("data", None)
        return d

    @classmethod
    def from_dict(cls, d: dict) -> OperationResult:
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})


@dataclass
class SaveResult:
    """Outcome of saving an edit session."""

    item_id: int
    created: bool
    payload: dict = field(default_factory=dict)
    data: Any = None
    attachment_results: list[OperationResult] = field(default_factory=list)

    @property
    def failed_attachments(self) -> list[OperationResult]:
        return [r for r in self.attachment_results if not r.success]

    @property
    def partially_applied(self) -> bool:
        """True when the record saved but some attachment operations failed."""
        return bool(self.failed_attachments)


@dataclass
class SyncLogEntry:
    """Record of a single load or save against a remote list."""

    timestamp: str
    direction: str             # list_to_form | form_to_list
    list_name: str
    item_id: int = 0
    fields_synced: list[str] = field(default_factory=list)
    attachments: list[dict] = field(default_factory=list)
    status: str = "success"    # success | partial | failed
    error: str = ""

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> SyncLogEntry:
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})
