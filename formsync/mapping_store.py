"""Name-mapping persistence for remote lists.

Stores one JSON file per list in ``<data_dir>/mappings/{list_name}.json`` holding
the ``remote field name -> form field name`` table.  Mappings are validated
before they are written: two remote fields may not map to the same form
field.
"""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from pathlib import Path

from formsync.value_mapper import validate_mapping
from shared.config import get_settings

MAPPINGS_DIR = get_settings().data_dir / "mappings"


def _ensure_dir() -> None:
    """Create the mappings directory if it doesn't exist."""
    MAPPINGS_DIR.mkdir(parents=True, exist_ok=True)


def _path_for(list_name: str) -> Path:
    """Return the JSON file path for a given list."""
    safe = re.sub(r"[^A-Za-z0-9_.-]+", "_", list_name).strip("_") or "list"
    return MAPPINGS_DIR / f"{safe}.json"


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

def save_mapping(list_name: str, mapping: dict[str, str]) -> Path:
    """Validate and persist a list's name mapping.

    Args:
        list_name: The remote list title.
        mapping:   ``remote name -> form name`` table.

    Returns:
        Path to the written JSON file.

    Raises:
        MappingConflictError: two remote names map to the same form name.
    """
    validate_mapping(mapping)
    _ensure_dir()
    path = _path_for(list_name)
    path.write_text(
        json.dumps(
            {
                "list_name": list_name,
                "mapping": dict(mapping),
                "updated_at": datetime.now(timezone.utc).isoformat(),
            },
            indent=2,
            ensure_ascii=False,
        ),
        encoding="utf-8",
    )
    return path


def load_mapping(list_name: str) -> dict[str, str]:
    """Load a list's name mapping; an empty dict when none is saved."""
    path = _path_for(list_name)
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError):
        return {}
    return dict(data.get("mapping") or {})


def list_mappings() -> dict[str, dict[str, str]]:
    """Return every saved mapping keyed by list name."""
    _ensure_dir()
    results: dict[str, dict[str, str]] = {}
    for path in sorted(MAPPINGS_DIR.glob("*.json")):
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            continue
        results[data.get("list_name") or path.stem] = dict(data.get("mapping") or {})
    return results


def delete_mapping(list_name: str) -> bool:
    """Delete a list's mapping.  Returns True if a file was removed."""
    path = _path_for(list_name)
    if path.exists():
        path.unlink()
        return True
    return False
