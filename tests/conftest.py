"""Shared fixtures for all tests."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

import formsync.mapping_store as mapping_mod
import formsync.sync_log as sync_log_mod
from shared.config import Settings
from shared.mock_list_service import MockListService


@pytest.fixture(autouse=True)
def _isolate_data_dirs(tmp_path: Path):
    """Redirect the sync log and mapping directories into tmp_path."""
    audit_dir = tmp_path / "audit"
    mappings_dir = tmp_path / "mappings"
    with patch.object(sync_log_mod, "DATA_DIR", audit_dir), \
         patch.object(mapping_mod, "MAPPINGS_DIR", mappings_dir):
        yield tmp_path


@pytest.fixture()
def settings():
    """Settings with no pause between attachment operations."""
    return Settings(site_url="https://contoso.sharepoint.com/sites/intake", attachment_pacing_ms=0)


@pytest.fixture()
def service():
    return MockListService()


@pytest.fixture()
def sample_item():
    """A remote list item as the list service returns it."""
    return {
        "__metadata": {"type": "SP.Data.CasesListItem"},
        "Id": 7,
        "Title": "Intake review",
        "Status": "Open",
        "Priority": 2,
        "Urgent": False,
        "AssignedTo": {"Id": 14, "Title": "Dana Reyes", "Name": "i:0#.f|membership|dana@contoso.com"},
        "Client": {"Id": 3, "Title": "Garcia"},
        "Reviewers": {"results": [{"Id": 21, "Title": "Sam Lee"}, {"Id": 22, "Title": "Ana Ruiz"}]},
        "Tags": {"results": ["asylum", "priority"]},
        "Author": {"__deferred": {"uri": "https://contoso/_api/web/lists/items(7)/Author"}},
        "Attachments": True,
    }


@pytest.fixture()
def seeded(service, sample_item):
    """MockListService holding ``sample_item`` in "Cases" with one attachment."""
    service.seed_item("Cases", sample_item)
    service.seed_attachment("Cases", 7, "passport.pdf", b"%PDF-1.4", "application/pdf")
    return service
