"""Field type normalization for remote list field metadata.

Remote metadata is inconsistent about how it signals a field's kind: a person
field may be flagged by its type name ("User", "UserMulti", "Person") or only
by a side attribute (``PrincipalType``), and lookup fields carry a target list
reference that user fields can also carry.  ``classify`` resolves those
overlapping signals in a fixed priority order:

    1. Attachments  - type "Attachments" or internal name "Attachments"
    2. User         - PrincipalType present, or type mentions user/person
    3. Lookup       - LookupListId / LookupList present
    4. Raw type     - the type string itself, falling back to Text
"""

from __future__ import annotations

import math
import re
from typing import Any

from formsync.schema import FieldMetadata, NormalizedType

_GUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)

# Lowercased raw type string -> enum value
_TYPE_LOOKUP: dict[str, NormalizedType] = {t.value.lower(): t for t in NormalizedType}

_REFERENCE_TYPES = {
    NormalizedType.LOOKUP,
    NormalizedType.LOOKUP_MULTI,
    NormalizedType.USER,
    NormalizedType.USER_MULTI,
}

_MULTI_TYPES = {
    NormalizedType.LOOKUP_MULTI,
    NormalizedType.USER_MULTI,
    NormalizedType.MULTI_CHOICE,
    NormalizedType.ATTACHMENT,
}


def _raw_type(raw: dict) -> str:
    value = raw.get("TypeAsString") or raw.get("Type") or ""
    return value if isinstance(value, str) else str(value)


def _is_multi(raw: dict, type_lower: str) -> bool:
    return raw.get("AllowMultipleValues") is True or "multi" in type_lower


def classify(raw: Any) -> NormalizedType:
    """Classify a raw field metadata record into a ``NormalizedType``.

    Pure and total: anything that is not a recognizable field record,
    including an unknown type string, classifies as ``Text``.
    """
    if not isinstance(raw, dict):
        return NormalizedType.TEXT

    raw_type = _raw_type(raw)
    type_lower = raw_type.lower()

    if raw_type == "Attachments" or raw.get("InternalName") == "Attachments":
        return NormalizedType.ATTACHMENT

    if (
        raw.get("PrincipalType") is not None
        or "user" in type_lower
        or "person" in type_lower
    ):
        if _is_multi(raw, type_lower):
            return NormalizedType.USER_MULTI
        return NormalizedType.USER

    if raw.get("LookupListId") or raw.get("LookupList") or raw.get("LookupListName"):
        if _is_multi(raw, type_lower):
            return NormalizedType.LOOKUP_MULTI
        return NormalizedType.LOOKUP

    return _TYPE_LOOKUP.get(type_lower, NormalizedType.TEXT)


def is_reference_type(normalized: NormalizedType) -> bool:
    """True for lookup and user fields (values point at other records)."""
    return normalized in _REFERENCE_TYPES


def is_multi_type(normalized: NormalizedType) -> bool:
    return normalized in _MULTI_TYPES


def is_guid(value: Any) -> bool:
    return isinstance(value, str) and bool(_GUID_RE.match(value))


def _choices(raw: dict) -> tuple[str, ...]:
    choices = raw.get("Choices")
    if isinstance(choices, dict):
        choices = choices.get("results")
    if not choices:
        return ()
    return tuple(str(c) for c in choices)


def _number(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _length(value: Any) -> int | None:
    number = _number(value)
    if not number or not math.isfinite(number):
        return None
    return int(number)


def normalize_metadata(raw: dict) -> FieldMetadata:
    """Build a ``FieldMetadata`` from a raw remote field record.

    Falsy optional attributes are normalized to ``None``.  A lookup target
    given as a GUID is kept in ``lookup_list_id``; a readable list name is
    kept in ``lookup_list_name``.
    """
    lookup_list = raw.get("LookupListName") or raw.get("LookupList") or None
    lookup_list_id = raw.get("LookupListId") or None
    if lookup_list and is_guid(lookup_list) and not lookup_list_id:
        lookup_list_id = lookup_list

    max_length = raw.get("MaxLength")

    return FieldMetadata(
        internal_name=raw.get("InternalName") or raw.get("Title") or "",
        display_name=raw.get("Title") or raw.get("InternalName") or "",
        normalized_type=classify(raw),
        required=bool(raw.get("Required", False)),
        read_only=bool(raw.get("ReadOnlyField", False)),
        choices=_choices(raw),
        lookup_list_id=lookup_list_id,
        lookup_list_name=lookup_list,
        lookup_field_name=raw.get("LookupField") or raw.get("LookupFieldName") or None,
        default_value=raw.get("DefaultValue") or None,
        description=raw.get("Description") or None,
        max_length=_length(max_length),
        min=_number(raw.get("MinimumValue", raw.get("Min"))),
        max=_number(raw.get("MaximumValue", raw.get("Max"))),
    )
