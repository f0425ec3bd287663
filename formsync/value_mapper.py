"""Bidirectional mapping between remote list items and flat form values.

Load direction (``to_form_values``): a remote item record, whose values may
be scalars, reference objects ``{Id, Title?, Name?}``, arrays of references,
or paginated ``{"results": [...]}`` wrappers, becomes a flat dict keyed by
form field name with references reduced to a canonical shape.

Save direction (``to_remote_payload``): form values become a remote payload.
References are written back as ``<RemoteName>Id`` keys, multi-references as
``<RemoteName>Id: {"results": [ids]}``, and attachment lists are handed to
the attachment reconciler instead of being written to the payload.

Every raw value is first decoded into a tagged ``DecodedValue`` so the
shape checks live in one place.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable

from formsync import attachment_reconciler
from formsync.errors import MappingConflictError
from formsync.schema import AttachmentDescriptor, NormalizedType, RemotePayload

DEFAULT_ATTACHMENT_FIELD = "Attachments"

_SINGLE_REF_TYPES = {NormalizedType.LOOKUP, NormalizedType.USER}
_MULTI_REF_TYPES = {NormalizedType.LOOKUP_MULTI, NormalizedType.USER_MULTI}


class ValueKind(str, Enum):
    NULL = "null"
    SCALAR = "scalar"
    SINGLE_REF = "single_ref"
    MULTI_REF = "multi_ref"
    PAGINATED = "paginated"
    OTHER = "other"


@dataclass(frozen=True)
class DecodedValue:
    kind: ValueKind
    value: Any


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

def _is_ref(value: Any) -> bool:
    return isinstance(value, dict) and "Id" in value


def decode_value(value: Any) -> DecodedValue:
    """Classify a raw remote value by shape.

    For ``PAGINATED`` the decoded value is the unwrapped ``results`` list.
    """
    if value is None:
        return DecodedValue(ValueKind.NULL, None)
    if isinstance(value, (str, int, float, bool)):
        return DecodedValue(ValueKind.SCALAR, value)
    if isinstance(value, dict):
        if "Id" in value:
            return DecodedValue(ValueKind.SINGLE_REF, value)
        if isinstance(value.get("results"), list):
            return DecodedValue(ValueKind.PAGINATED, value["results"])
        return DecodedValue(ValueKind.OTHER, value)
    if isinstance(value, (list, tuple)) and value and _is_ref(value[0]):
        return DecodedValue(ValueKind.MULTI_REF, list(value))
    return DecodedValue(ValueKind.OTHER, value)


def is_envelope_key(name: str) -> bool:
    """True for protocol metadata keys that are not list fields."""
    return name.startswith("odata.") or "@odata" in name or name == "__metadata"


def _is_deferred(value: Any) -> bool:
    # Unexpanded navigation property: {"__deferred": {"uri": ...}}
    return isinstance(value, dict) and set(value) == {"__deferred"}


# ---------------------------------------------------------------------------
# Reference shapes
# ---------------------------------------------------------------------------

def reference_shape(ref: dict) -> dict:
    """Reduce a reference object to ``{Id, Title}`` or ``{Id, Title, Name}``.

    An ``Id`` object with neither ``Title`` nor ``Name`` is returned as a copy.
    """
    if "Name" in ref:
        return {"Id": ref["Id"], "Title": ref.get("Title"), "Name": ref["Name"]}
    if "Title" in ref:
        return {"Id": ref["Id"], "Title": ref["Title"]}
    return dict(ref)


def _multi_reference_shape(refs: list) -> list:
    shaped = []
    for item in refs:
        if not isinstance(item, dict):
            shaped.append(item)
        elif item.get("Name"):
            shaped.append({"Id": item.get("Id"), "Title": item.get("Title"), "Name": item["Name"]})
        else:
            shaped.append({"Id": item.get("Id"), "Title": item.get("Title")})
    return shaped


def to_form_value(value: Any) -> Any:
    """Convert one remote value into its form shape."""
    decoded = decode_value(value)

    if decoded.kind == ValueKind.NULL:
        return None
    if decoded.kind == ValueKind.SINGLE_REF:
        return reference_shape(decoded.value)
    if decoded.kind == ValueKind.MULTI_REF:
        return _multi_reference_shape(decoded.value)
    if decoded.kind == ValueKind.PAGINATED:
        results = decoded.value
        if results and _is_ref(results[0]):
            return _multi_reference_shape(results)
        return list(results)
    return decoded.value


# ---------------------------------------------------------------------------
# Name mapping
# ---------------------------------------------------------------------------

def invert_mapping(mapping: dict[str, str] | None) -> dict[str, str]:
    """Return the ``form name -> remote name`` table for a name mapping.

    Raises:
        MappingConflictError: two remote names map to the same form name.
    """
    reverse: dict[str, str] = {}
    seen: dict[str, list[str]] = {}
    for remote_name, form_name in (mapping or {}).items():
        seen.setdefault(form_name, []).append(remote_name)
        reverse[form_name] = remote_name

    for form_name, remote_names in seen.items():
        if len(remote_names) > 1:
            raise MappingConflictError(form_name, remote_names)
    return reverse


def validate_mapping(mapping: dict[str, str] | None) -> None:
    invert_mapping(mapping)


def form_name_for(remote_name: str, mapping: dict[str, str] | None) -> str:
    return (mapping or {}).get(remote_name, remote_name)


def coerce_id(value: Any) -> Any:
    """Convert an all-digit string id to int; leave anything else as is."""
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return value


# ---------------------------------------------------------------------------
# Load path
# ---------------------------------------------------------------------------

def to_form_values(remote: dict, mapping: dict[str, str] | None = None) -> dict:
    """Map a remote item record to flat form values.

    Args:
        remote:  The remote item record (not modified).
        mapping: ``remote name -> form name`` table; unmapped names keep
                 their remote name.

    Returns:
        Dict of form field name -> form-shaped value.
    """
    values: dict = {}
    for remote_name, value in remote.items():
        if is_envelope_key(remote_name) or _is_deferred(value):
            continue
        values[form_name_for(remote_name, mapping)] = to_form_value(value)
    return values


def attachments_from_listing(listing: Iterable[dict] | None) -> list[AttachmentDescriptor]:
    """Convert a remote attachment listing to persisted descriptors."""
    if not listing:
        return []
    return [AttachmentDescriptor.from_remote(att) for att in listing if isinstance(att, dict)]


def find_attachment_field(
    values: dict,
    mapping: dict[str, str] | None = None,
    field_types: dict[str, NormalizedType] | None = None,
) -> str:
    """Pick the form field that holds the item's attachments.

    A field typed as anything other than ``Attachment`` is never picked,
    whatever its name.
    """
    types = field_types or {}
    for name, normalized in types.items():
        if normalized == NormalizedType.ATTACHMENT:
            return name

    candidates = [
        name
        for name in list(values) + list((mapping or {}).values())
        if types.get(name, NormalizedType.ATTACHMENT) == NormalizedType.ATTACHMENT
    ]
    for name in candidates:
        if name.lower() == "attachments":
            return name
    for name in candidates:
        if "attachment" in name.lower():
            return name
    return form_name_for(DEFAULT_ATTACHMENT_FIELD, mapping)


# ---------------------------------------------------------------------------
# Save path
# ---------------------------------------------------------------------------

def is_attachment_field(
    form_name: str,
    remote_name: str,
    field_types: dict[str, NormalizedType] | None = None,
) -> bool:
    """Decide whether a field holds attachments.

    An explicit type for the field wins; without one, a field whose form or
    remote name contains "attachment" is treated as an attachment field.
    """
    if field_types and form_name in field_types:
        return field_types[form_name] == NormalizedType.ATTACHMENT
    return "attachment" in form_name.lower() or "attachment" in remote_name.lower()


def _fields_to_process(values: dict, dirty_only: Iterable[str] | None) -> list[str]:
    if dirty_only is None:
        return list(values)
    dirty = set(dirty_only)
    ordered = [name for name in values if name in dirty]
    ordered.extend(sorted(dirty - set(values)))
    return ordered


def to_remote_payload(
    values: dict,
    mapping: dict[str, str] | None = None,
    dirty_only: Iterable[str] | None = None,
    baseline_attachments: Iterable[Any] | None = None,
    field_types: dict[str, NormalizedType] | None = None,
) -> RemotePayload:
    """Map form values back to a remote payload.

    Args:
        values:               Current form values.
        mapping:              ``remote name -> form name`` table.
        dirty_only:           Form field names to include (existing records).
                              None includes every field (new records).
        baseline_attachments: Attachments on the item at load time.
        field_types:          Optional ``form name -> NormalizedType`` table.
                              When a field is typed, its type decides how it
                              is written instead of the name heuristic.

    Returns:
        A ``RemotePayload`` with the item payload and the attachment work.

    Raises:
        MappingConflictError: the mapping is not injective.
    """
    reverse = invert_mapping(mapping)
    result = RemotePayload()
    types = field_types or {}

    for form_name in _fields_to_process(values, dirty_only):
        remote_name = reverse.get(form_name, form_name)
        value = values.get(form_name)
        normalized = types.get(form_name)

        if is_attachment_field(form_name, remote_name, field_types):
            if isinstance(value, (list, tuple)):
                work = attachment_reconciler.plan(value, baseline_attachments or [])
                result.files_to_upload.extend(work.to_upload)
                for name in work.to_delete:
                    if name not in result.files_to_delete:
                        result.files_to_delete.append(name)
            continue

        if isinstance(value, (list, tuple)) and value:
            pending = [item for item in value if attachment_reconciler.is_pending_entry(item)]
            if pending:
                result.files_to_upload.extend(attachment_reconciler.coerce_attachments(pending))
            elif _is_ref(value[0]):
                ids = [coerce_id(item.get("Id")) for item in value if isinstance(item, dict)]
                result.payload[f"{remote_name}Id"] = {"results": ids}
            else:
                result.payload[remote_name] = list(value)
        elif normalized in _MULTI_REF_TYPES and not value:
            result.payload[f"{remote_name}Id"] = {"results": []}
        elif _is_ref(value):
            result.payload[f"{remote_name}Id"] = value["Id"]
        elif normalized in _SINGLE_REF_TYPES and value is None:
            result.payload[f"{remote_name}Id"] = None
        else:
            result.payload[remote_name] = list(value) if isinstance(value, tuple) else value

    return result
