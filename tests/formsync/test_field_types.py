"""Tests for formsync/field_types.py — field type normalization."""

from __future__ import annotations

import pytest

from formsync.field_types import (
    classify,
    is_guid,
    is_multi_type,
    is_reference_type,
    normalize_metadata,
)
from formsync.schema import NormalizedType


# ── classify ─────────────────────────────────────────────────────────────


class TestClassifyTotality:
    @pytest.mark.parametrize(
        "raw",
        [
            None,
            "Text",
            42,
            [],
            {},
            {"TypeAsString": None},
            {"TypeAsString": 12},
            {"TypeAsString": "SomethingNew"},
            {"Type": "Geolocation", "InternalName": "Where"},
        ],
    )
    def test_never_raises_and_falls_back_to_text(self, raw):
        assert classify(raw) == NormalizedType.TEXT

    @pytest.mark.parametrize("t", list(NormalizedType))
    def test_every_type_name_maps_to_itself(self, t):
        assert classify({"TypeAsString": t.value}) == t

    def test_raw_type_is_case_insensitive(self):
        assert classify({"TypeAsString": "datetime"}) == NormalizedType.DATETIME
        assert classify({"TypeAsString": "MULTICHOICE"}) == NormalizedType.MULTI_CHOICE

    def test_type_falls_back_to_type_attribute(self):
        assert classify({"Type": "Currency"}) == NormalizedType.CURRENCY


class TestClassifyPriority:
    def test_attachments_by_type(self):
        assert classify({"TypeAsString": "Attachments"}) == NormalizedType.ATTACHMENT

    def test_attachments_by_internal_name_beats_user_signal(self):
        raw = {"InternalName": "Attachments", "PrincipalType": 1, "TypeAsString": "Boolean"}
        assert classify(raw) == NormalizedType.ATTACHMENT

    def test_principal_type_beats_lookup_list(self):
        raw = {"TypeAsString": "Lookup", "PrincipalType": 1, "LookupList": "UserInfo"}
        assert classify(raw) == NormalizedType.USER

    def test_principal_type_multi_beats_lookup_multi(self):
        raw = {
            "TypeAsString": "LookupMulti",
            "PrincipalType": 1,
            "LookupListId": "{abc}",
            "AllowMultipleValues": True,
        }
        assert classify(raw) == NormalizedType.USER_MULTI

    def test_user_type_name_without_principal_type(self):
        assert classify({"TypeAsString": "User"}) == NormalizedType.USER
        assert classify({"TypeAsString": "UserMulti"}) == NormalizedType.USER_MULTI

    def test_person_type_name(self):
        assert classify({"TypeAsString": "Person or Group"}) == NormalizedType.USER

    def test_user_with_allow_multiple(self):
        raw = {"TypeAsString": "User", "AllowMultipleValues": True}
        assert classify(raw) == NormalizedType.USER_MULTI

    def test_principal_type_none_is_absent(self):
        raw = {"TypeAsString": "Lookup", "PrincipalType": None, "LookupList": "Clients"}
        assert classify(raw) == NormalizedType.LOOKUP

    def test_lookup_by_list_id(self):
        assert classify({"TypeAsString": "Text", "LookupListId": "{guid}"}) == NormalizedType.LOOKUP

    def test_lookup_multi(self):
        raw = {"TypeAsString": "LookupMulti", "LookupList": "Clients"}
        assert classify(raw) == NormalizedType.LOOKUP_MULTI

    def test_lookup_allow_multiple(self):
        raw = {"TypeAsString": "Lookup", "LookupList": "Clients", "AllowMultipleValues": True}
        assert classify(raw) == NormalizedType.LOOKUP_MULTI

    def test_empty_lookup_list_is_not_lookup(self):
        assert classify({"TypeAsString": "Number", "LookupList": ""}) == NormalizedType.NUMBER


class TestTypeHelpers:
    def test_reference_types(self):
        assert is_reference_type(NormalizedType.LOOKUP)
        assert is_reference_type(NormalizedType.USER_MULTI)
        assert not is_reference_type(NormalizedType.CHOICE)

    def test_multi_types(self):
        assert is_multi_type(NormalizedType.MULTI_CHOICE)
        assert is_multi_type(NormalizedType.ATTACHMENT)
        assert not is_multi_type(NormalizedType.USER)

    def test_is_guid(self):
        assert is_guid("0b7b3a52-5f0d-4a7a-9a36-1f3a4b2c9d10")
        assert not is_guid("Clients")
        assert not is_guid(None)


# ── normalize_metadata ───────────────────────────────────────────────────


class TestNormalizeMetadata:
    def test_choice_field(self):
        raw = {
            "InternalName": "Status",
            "Title": "Case Status",
            "TypeAsString": "Choice",
            "Required": True,
            "Choices": {"results": ["Open", "Closed"]},
            "DefaultValue": "Open",
        }
        meta = normalize_metadata(raw)
        assert meta.internal_name == "Status"
        assert meta.display_name == "Case Status"
        assert meta.normalized_type == NormalizedType.CHOICE
        assert meta.required is True
        assert meta.choices == ("Open", "Closed")
        assert meta.default_value == "Open"

    def test_choices_as_plain_list(self):
        meta = normalize_metadata({"InternalName": "Tags", "TypeAsString": "MultiChoice", "Choices": ["a", "b"]})
        assert meta.choices == ("a", "b")

    def test_numeric_bounds(self):
        raw = {"InternalName": "Priority", "TypeAsString": "Number", "MinimumValue": 1, "MaximumValue": "5"}
        meta = normalize_metadata(raw)
        assert meta.min == 1.0
        assert meta.max == 5.0

    @pytest.mark.parametrize("value", ["n/a", "abc", [], "nan"])
    def test_unparseable_max_length_becomes_none(self, value):
        assert normalize_metadata({"InternalName": "Title", "MaxLength": value}).max_length is None

    def test_numeric_string_max_length(self):
        assert normalize_metadata({"InternalName": "Title", "MaxLength": "255"}).max_length == 255

    def test_unparseable_bounds_become_none(self):
        meta = normalize_metadata({"InternalName": "N", "TypeAsString": "Number", "Min": "abc"})
        assert meta.min is None
        assert meta.max is None

    def test_falsy_optionals_are_none(self):
        meta = normalize_metadata({"InternalName": "Title", "Description": "", "MaxLength": 0})
        assert meta.description is None
        assert meta.max_length is None
        assert meta.lookup_list_id is None

    def test_guid_lookup_list_moves_to_id(self):
        guid = "0b7b3a52-5f0d-4a7a-9a36-1f3a4b2c9d10"
        meta = normalize_metadata({"InternalName": "Client", "TypeAsString": "Lookup", "LookupList": guid})
        assert meta.normalized_type == NormalizedType.LOOKUP
        assert meta.lookup_list_id == guid

    def test_resolved_lookup_name_kept(self):
        raw = {
            "InternalName": "Client",
            "TypeAsString": "Lookup",
            "LookupList": "{guid}",
            "LookupListName": "Clients",
            "LookupField": "Title",
        }
        meta = normalize_metadata(raw)
        assert meta.lookup_list_name == "Clients"
        assert meta.lookup_field_name == "Title"

    def test_to_dict_round_trip(self):
        meta = normalize_metadata({"InternalName": "Status", "TypeAsString": "Choice", "Choices": ["x"]})
        d = meta.to_dict()
        assert d["normalized_type"] == "Choice"
        assert d["choices"] == ["x"]
        assert type(meta).from_dict(d) == meta
