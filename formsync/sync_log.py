"""Append-only JSONL history of list loads and saves.

One JSON object per line in ``<data_dir>/audit/sync_log.jsonl``.  Each save
records which remote fields were written and the outcome of every
attachment operation, so partially applied saves can be traced later.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from formsync.schema import OperationResult, SyncLogEntry
from shared.config import get_settings

DATA_DIR = get_settings().data_dir / "audit"
SYNC_LOG_NAME = "sync_log.jsonl"


def _ensure_dir() -> None:
    DATA_DIR.mkdir(parents=True, exist_ok=True)


def _log_path() -> Path:
    return DATA_DIR / SYNC_LOG_NAME


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def append_entry(entry: SyncLogEntry) -> SyncLogEntry:
    """Append a SyncLogEntry to the sync log JSONL file."""
    _ensure_dir()
    with _log_path().open("a", encoding="utf-8") as f:
        f.write(json.dumps(entry.to_dict(), ensure_ascii=False, default=str) + "\n")
    return entry


def log_load(list_name: str, item_id: int, fields: list[str], error: str = "") -> SyncLogEntry:
    """Record a list -> form load."""
    return append_entry(
        SyncLogEntry(
            timestamp=_now(),
            direction="list_to_form",
            list_name=list_name,
            item_id=item_id,
            fields_synced=fields,
            status="failed" if error else "success",
            error=error,
        )
    )


def log_save(
    list_name: str,
    item_id: int,
    fields: list[str],
    attachment_results: list[OperationResult] | None = None,
    error: str = "",
) -> SyncLogEntry:
    """Record a form -> list save.

    Status is ``failed`` when the record itself was not saved, ``partial``
    when some attachment operations failed, ``success`` otherwise.
    """
    results = attachment_results or []
    if error:
        status = "failed"
    elif any(not r.success for r in results):
        status = "partial"
    else:
        status = "success"

    return append_entry(
        SyncLogEntry(
            timestamp=_now(),
            direction="form_to_list",
            list_name=list_name,
            item_id=item_id,
            fields_synced=fields,
            attachments=[r.to_dict() for r in results],
            status=status,
            error=error,
        )
    )


def get_sync_log(limit: int = 50, list_name: str | None = None) -> list[SyncLogEntry]:
    """Read sync log entries from disk, newest first.

    Args:
        limit:     Maximum number of entries to return.
        list_name: Only return entries for this list.

    Returns:
        List of SyncLogEntry, most recent first.  Unreadable lines are skipped.
    """
    path = _log_path()
    if not path.exists():
        return []

    entries: list[SyncLogEntry] = []
    with path.open("r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                entry = SyncLogEntry.from_dict(json.loads(line))
            except (json.JSONDecodeError, TypeError):
                continue
            if list_name is None or entry.list_name == list_name:
                entries.append(entry)

    # Newest first
    entries.reverse()
    return entries[:limit]
