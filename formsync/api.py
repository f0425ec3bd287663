"""FastAPI backend for the list form sync engine.

Provides endpoints for classifying raw field metadata, reading a list
field's normalized schema, managing per-list name mappings, loading a list
item as form values, saving an edited form back to the list, and reading
the sync history.
"""

from __future__ import annotations

import base64
import binascii
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel

from shared.list_service import ListService
from shared.sharepoint_client import get_service

from formsync import mapping_store, sync_log
from formsync.errors import ListServiceError, MappingConflictError
from formsync.field_types import normalize_metadata
from formsync.session import EditSession, serialize_values

app = FastAPI(title="List Form Sync API")


def get_list_service() -> ListService:
    """Remote list store used by the endpoints (overridden in tests)."""
    return get_service()


def _http_error(exc: ListServiceError) -> HTTPException:
    return HTTPException(status_code=exc.status_code or 502, detail=exc.message)


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------

class ClassifyRequest(BaseModel):
    """Raw field metadata records, as returned by the remote list."""

    fields: list[dict[str, Any]]


class MappingRequest(BaseModel):
    """A ``remote field name -> form field name`` table."""

    mapping: dict[str, str]


class PendingAttachment(BaseModel):
    """A file to upload on save, base64-encoded."""

    name: str
    content_base64: str
    content_type: str = ""


class SaveRequest(BaseModel):
    """Payload for saving a form back to its list item.

    ``baseline`` is the form as it was served by the form endpoint; only
    fields whose value differs from it are written to an existing item.
    """

    values: dict[str, Any]
    baseline: dict[str, Any] = {}
    attachments: list[PendingAttachment] = []
    field_names: list[str] = []
    list_url: str | None = None


# ---------------------------------------------------------------------------
# Fields
# ---------------------------------------------------------------------------

@app.post("/api/fields/classify")
def classify_fields(request: ClassifyRequest) -> list[dict[str, Any]]:
    """Normalize raw field metadata records."""
    return [normalize_metadata(raw).to_dict() for raw in request.fields]


@app.get("/api/lists/{list_name}/fields/{field_name}")
def get_field(
    list_name: str,
    field_name: str,
    list_url: str | None = Query(None),
    service: ListService = Depends(get_list_service),
) -> dict[str, Any]:
    """Normalized metadata for one field of a list."""
    resp = service.get_field_metadata(list_name, field_name, list_url)
    if not resp.success:
        raise HTTPException(status_code=resp.status_code or 502, detail=resp.error)
    return normalize_metadata(resp.data or {}).to_dict()


# ---------------------------------------------------------------------------
# Name mappings
# ---------------------------------------------------------------------------

@app.get("/api/lists/{list_name}/mapping")
def get_mapping(list_name: str) -> dict[str, Any]:
    return {"list_name": list_name, "mapping": mapping_store.load_mapping(list_name)}


@app.put("/api/lists/{list_name}/mapping")
def put_mapping(list_name: str, request: MappingRequest) -> dict[str, Any]:
    """Save a list's name mapping.  Conflicting mappings are rejected."""
    try:
        mapping_store.save_mapping(list_name, request.mapping)
    except MappingConflictError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"list_name": list_name, "mapping": request.mapping}


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------

@app.get("/api/lists/{list_name}/items/{item_id}/form")
def get_form(
    list_name: str,
    item_id: int,
    fields: list[str] | None = Query(None, description="Remote fields to load and classify"),
    list_url: str | None = Query(None),
    service: ListService = Depends(get_list_service),
) -> dict[str, Any]:
    """Load a list item as form values.

    Item id 0 returns an empty form for a new item.
    """
    try:
        session = EditSession(
            service,
            list_name,
            item_id=item_id,
            mapping=mapping_store.load_mapping(list_name),
            list_url=list_url,
            field_names=fields,
        )
        field_types = session.get_field_types() if fields else {}
        values = session.load()
    except MappingConflictError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except ListServiceError as exc:
        raise _http_error(exc)

    return {
        "list_name": list_name,
        "item_id": session.item_id,
        "values": serialize_values(values),
        "field_types": {name: t.value for name, t in field_types.items()},
        "attachment_field": session.attachment_field,
    }


@app.post("/api/lists/{list_name}/items/{item_id}/save")
def save_form(
    list_name: str,
    item_id: int,
    request: SaveRequest,
    service: ListService = Depends(get_list_service),
) -> dict[str, Any]:
    """Save an edited form.

    Item id 0 creates a new item with every field; otherwise only fields that
    differ from ``baseline`` are written.  Attachment failures do not fail
    the request: they are listed in ``attachment_results`` and flagged by
    ``partially_applied``.
    """
    pending: list[tuple[PendingAttachment, bytes]] = []
    for att in request.attachments:
        try:
            pending.append((att, base64.b64decode(att.content_base64, validate=True)))
        except binascii.Error:
            raise HTTPException(status_code=400, detail=f"Invalid base64 content for {att.name}")

    try:
        session = EditSession(
            service,
            list_name,
            item_id=item_id,
            mapping=mapping_store.load_mapping(list_name),
            list_url=request.list_url,
            field_names=request.field_names,
        )
        if request.field_names:
            session.get_field_types()
        session.start_from(request.baseline)
        session.set_values(request.values)
        for att, content in pending:
            session.add_attachment(att.name, content, content_type=att.content_type)
        result = session.save()
    except MappingConflictError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except ListServiceError as exc:
        raise _http_error(exc)

    return {
        "list_name": list_name,
        "item_id": result.item_id,
        "created": result.created,
        "payload": result.payload,
        "partially_applied": result.partially_applied,
        "attachment_results": [r.to_dict() for r in result.attachment_results],
        "values": serialize_values(session.values),
        "dirty_fields": sorted(session.dirty_fields),
    }


# ---------------------------------------------------------------------------
# Sync history
# ---------------------------------------------------------------------------

@app.get("/api/sync-log")
def get_sync_history(
    limit: int = Query(50, ge=1, le=500),
    list_name: str | None = Query(None),
) -> list[dict[str, Any]]:
    """Return sync log entries, newest first."""
    return [e.to_dict() for e in sync_log.get_sync_log(limit=limit, list_name=list_name)]
