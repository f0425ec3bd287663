"""Attachment-set reconciliation for list items.

Computes which attachments to upload and which to delete to move an item
from its baseline attachment set to the set the user is looking at, then
runs those operations one at a time.

Diffing is by name (``id`` first, then ``name``), not by content: a pending
upload whose name matches a persisted attachment is still uploaded, and the
persisted one is only deleted if its name is gone from the current set.

Execution order is deletes first, then uploads.  A failed operation is
recorded and the loop moves on; nothing is rolled back, and the item record
itself (saved before reconciliation starts) is never touched here.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from shared.list_service import ApiResponse

from formsync.schema import AttachmentDescriptor, OperationResult

logger = logging.getLogger(__name__)

DEFAULT_PACING_SECONDS = 0.1


@dataclass
class AttachmentPlan:
    """Ordered upload/delete work for one save."""

    to_upload: list[AttachmentDescriptor] = field(default_factory=list)
    to_delete: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.to_upload and not self.to_delete


# ---------------------------------------------------------------------------
# Descriptor coercion
# ---------------------------------------------------------------------------

_FILE_KEYS = ("pending_file", "pendingFile", "file")


def _file_handle(item: dict) -> Any:
    for key in _FILE_KEYS:
        if item.get(key) is not None:
            return item[key]
    return None


def as_attachment(item: Any) -> AttachmentDescriptor | None:
    """Coerce a list element into an ``AttachmentDescriptor``.

    Accepts descriptors, plain dicts (file handle under ``pending_file``,
    ``pendingFile`` or ``file``) and remote listing dicts (``FileName``).
    Returns None for anything that has neither an id nor a name.
    """
    if isinstance(item, AttachmentDescriptor):
        return item
    if not isinstance(item, dict):
        return None
    if "FileName" in item or "ServerRelativeUrl" in item:
        return AttachmentDescriptor.from_remote(item)

    ident = item.get("id")
    name = item.get("name") or ""
    if not ident and not name:
        return None
    return AttachmentDescriptor(
        id=str(ident) if ident else None,
        name=name or str(ident),
        size=int(item.get("size") or 0),
        content_type=item.get("content_type") or item.get("contentType") or "",
        url=item.get("url"),
        pending_file=_file_handle(item),
    )


def coerce_attachments(items: Iterable[Any] | None) -> list[AttachmentDescriptor]:
    if not items:
        return []
    result = []
    for item in items:
        att = as_attachment(item)
        if att is not None:
            result.append(att)
    return result


def is_pending_entry(item: Any) -> bool:
    """True for a list element that is a local file not yet persisted."""
    if isinstance(item, AttachmentDescriptor):
        return item.is_pending
    if isinstance(item, dict):
        return _file_handle(item) is not None and not item.get("id")
    return False


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------

def plan(current: Iterable[Any], baseline: Iterable[Any]) -> AttachmentPlan:
    """Diff the current attachment set against the baseline.

    Args:
        current:  Attachments the user is looking at (persisted + pending).
        baseline: Attachments on the remote item when the session started.

    Returns:
        An ``AttachmentPlan``.  ``to_upload`` holds every pending entry in
        ``current``; ``to_delete`` holds baseline names no longer present in
        ``current``, in baseline order.
    """
    current_atts = coerce_attachments(current)
    baseline_atts = coerce_attachments(baseline)

    current_names = {a.key for a in current_atts if a.key}

    to_upload = [a for a in current_atts if a.is_pending]

    to_delete: list[str] = []
    for att in baseline_atts:
        name = att.key
        if name and name not in current_names and name not in to_delete:
            to_delete.append(name)

    return AttachmentPlan(to_upload=to_upload, to_delete=to_delete)


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------

class SequentialQueue:
    """Runs queued operations one at a time, in order.

    Degree-1 bounded queue: a single operation is in flight at any moment.
    Consecutive operations of the same kind are separated by
    ``pacing_seconds``; no pause follows the last operation of a kind.
    """

    def __init__(
        self,
        pacing_seconds: float = DEFAULT_PACING_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.pacing_seconds = pacing_seconds
        self._sleep = sleep
        self._pending: deque[tuple[str, str, Callable[[], Any]]] = deque()

    def __len__(self) -> int:
        return len(self._pending)

    def put(self, kind: str, name: str, op: Callable[[], Any]) -> None:
        self._pending.append((kind, name, op))

    def drain(self) -> list[OperationResult]:
        """Run every queued operation and return one result per operation."""
        results: list[OperationResult] = []
        while self._pending:
            kind, name, op = self._pending.popleft()
            results.append(_run_one(kind, name, op))
            if self._pending and self._pending[0][0] == kind and self.pacing_seconds > 0:
                self._sleep(self.pacing_seconds)
        return results


def _run_one(kind: str, name: str, op: Callable[[], Any]) -> OperationResult:
    try:
        response = op()
    except Exception as exc:
        logger.warning("Attachment %s failed for %s: %s", kind, name, exc)
        return OperationResult(kind=kind, name=name, success=False, error=str(exc))

    if isinstance(response, ApiResponse):
        if not response.success:
            logger.warning(
                "Attachment %s failed for %s: %s (status %s)",
                kind, name, response.error, response.status_code,
            )
        return OperationResult(
            kind=kind,
            name=name,
            success=response.success,
            error="" if response.success else (response.error or f"Failed to {kind} {name}"),
            status_code=response.status_code,
            data=response.data,
        )
    return OperationResult(kind=kind, name=name, success=True, data=response)


def execute(
    attachment_plan: AttachmentPlan,
    upload_op: Callable[[AttachmentDescriptor], Any],
    delete_op: Callable[[str], Any],
    pacing_seconds: float = DEFAULT_PACING_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> list[OperationResult]:
    """Run a plan: every delete, then every upload, one at a time.

    Args:
        attachment_plan: Output of ``plan``.
        upload_op:       Called with each descriptor to upload.
        delete_op:       Called with each attachment name to delete.
        pacing_seconds:  Pause between consecutive operations of one kind.
        sleep:           Injected for tests.

    Returns:
        One ``OperationResult`` per operation, deletes first.  An operation
        that raises or returns a failed ``ApiResponse`` is reported as failed;
        the remaining operations still run.
    """
    queue = SequentialQueue(pacing_seconds=pacing_seconds, sleep=sleep)
    for name in attachment_plan.to_delete:
        queue.put("delete", name, lambda n=name: delete_op(n))
    for att in attachment_plan.to_upload:
        queue.put("upload", att.name, lambda a=att: upload_op(a))

    results = queue.drain()
    failed = [r for r in results if not r.success]
    if failed:
        logger.info(
            "Attachment sync finished with %d of %d operations failed",
            len(failed), len(results),
        )
    return results
