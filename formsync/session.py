"""Edit sessions: load a list item into form values, track edits, save.

An ``EditSession`` owns one form's values, its baseline snapshot, its dirty
set, and its field metadata cache.  ``load`` pulls the remote item (and its
attachment listing) into form values; ``save`` writes either the whole form
(new item) or only the dirty fields (existing item), then reconciles
attachments against the item's id.

Failure domains are separate: a failed create/update raises ``SaveError``
before any attachment is touched, while failed attachment operations are
reported on the ``SaveResult`` and leave the record save in place.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from shared.config import Settings, get_settings
from shared.list_service import ApiResponse, ListService

from formsync import attachment_reconciler, sync_log
from formsync.attachment_reconciler import AttachmentPlan, coerce_attachments
from formsync.dirty_tracker import DirtyTracker, snapshot
from formsync.errors import LoadError, SaveError
from formsync.field_types import normalize_metadata
from formsync.metadata_cache import FieldMetadataCache
from formsync.schema import (
    AttachmentDescriptor,
    FieldMetadata,
    NormalizedType,
    OperationResult,
    SaveResult,
)
from formsync.value_mapper import (
    attachments_from_listing,
    find_attachment_field,
    form_name_for,
    to_form_values,
    to_remote_payload,
    validate_mapping,
)

logger = logging.getLogger(__name__)


def serialize_values(values: dict) -> dict:
    """Return form values with attachment descriptors as plain dicts."""
    result: dict = {}
    for name, value in values.items():
        if isinstance(value, list) and any(isinstance(v, AttachmentDescriptor) for v in value):
            result[name] = [
                {**v.to_dict(), "pending": v.is_pending} if isinstance(v, AttachmentDescriptor) else v
                for v in value
            ]
        else:
            result[name] = value
    return result


def _file_size(file_handle: Any) -> int:
    if isinstance(file_handle, (bytes, bytearray)):
        return len(file_handle)
    if hasattr(file_handle, "getbuffer"):
        return file_handle.getbuffer().nbytes
    return 0


class EditSession:
    """One editor's session against one list item.

    Args:
        service:        The remote list store.
        list_name:      Remote list title.
        item_id:        Existing item id; 0 (or less) for a new item.
        mapping:        ``remote name -> form name`` table.
        list_url:       Optional list or web URL when the list lives elsewhere.
        initial_values: Values applied on top of the loaded item.
        field_names:    Remote fields to request (and expand) on load.
        metadata_cache: Shared cache; a private one is created when omitted.
        settings:       Source of the attachment pacing; get_settings() when omitted.
        sleep:          Injected for tests.
        record_history: Append load/save entries to the sync log.
    """

    def __init__(
        self,
        service: ListService,
        list_name: str,
        item_id: int = 0,
        mapping: dict[str, str] | None = None,
        list_url: str | None = None,
        initial_values: dict | None = None,
        field_names: list[str] | None = None,
        metadata_cache: FieldMetadataCache | None = None,
        settings: Settings | None = None,
        sleep: Callable[[float], None] = time.sleep,
        record_history: bool = True,
    ):
        validate_mapping(mapping)
        self.service = service
        self.list_name = list_name
        self.item_id = int(item_id or 0)
        self.mapping = dict(mapping or {})
        self.list_url = list_url
        self.initial_values = dict(initial_values or {})
        self.field_names = list(field_names or [])
        self.metadata_cache = metadata_cache if metadata_cache is not None else FieldMetadataCache()
        self.pacing_seconds = (settings or get_settings()).attachment_pacing_seconds
        self.record_history = record_history
        self._sleep = sleep

        self.values: dict = snapshot(self.initial_values)
        self.item_data: dict | None = None
        self.field_types: dict[str, NormalizedType] = {}
        self.attachment_field: str | None = None
        self._baseline_attachments: list[AttachmentDescriptor] = []
        self._tracker = DirtyTracker(self.values)

    # -- State ----------------------------------------------------------------

    @property
    def is_new(self) -> bool:
        return self.item_id <= 0

    @property
    def dirty_fields(self) -> set[str]:
        return self._tracker.dirty_fields

    @property
    def baseline(self) -> dict:
        return self._tracker.baseline

    @property
    def baseline_attachments(self) -> list[AttachmentDescriptor]:
        return list(self._baseline_attachments)

    # -- Metadata -------------------------------------------------------------

    def get_field_metadata(self, field_name: str) -> FieldMetadata | None:
        """Normalized metadata for a remote field, fetched once per session cache."""

        def fetch() -> FieldMetadata | None:
            resp = self.service.get_field_metadata(self.list_name, field_name, self.list_url)
            if not resp.success or not resp.data:
                logger.warning(
                    "Field metadata unavailable for %s.%s: %s",
                    self.list_name, field_name, resp.error,
                )
                return None
            return normalize_metadata(resp.data)

        return self.metadata_cache.get_or_fetch(self.list_name, field_name, fetch, self.list_url)

    def get_field_types(self, field_names: list[str] | None = None) -> dict[str, NormalizedType]:
        """Classify remote fields and key the result by form field name.

        Fields whose metadata cannot be fetched are left untyped, so the save
        path falls back to shape and name checks for them.
        """
        for name in field_names or self.field_names:
            metadata = self.get_field_metadata(name)
            if metadata is not None:
                self.field_types[form_name_for(name, self.mapping)] = metadata.normalized_type
        return dict(self.field_types)

    # -- Load -----------------------------------------------------------------

    def _load_attachments(self) -> list[AttachmentDescriptor] | None:
        fetch = getattr(self.service, "get_attachments", None)
        if fetch is None:
            return None
        resp = fetch(self.list_name, self.item_id, self.list_url)
        if not resp.success:
            logger.warning(
                "Attachment listing failed for %s item %s: %s",
                self.list_name, self.item_id, resp.error,
            )
            return []
        return attachments_from_listing(resp.data if isinstance(resp.data, list) else [])

    def load(self) -> dict:
        """Load the remote item into form values and take the baseline.

        New items start from ``initial_values``.  For existing items, the
        remote record is mapped to form values, the attachment listing is
        placed under the attachment field, and ``initial_values`` are applied
        on top.

        Raises:
            LoadError: the item could not be fetched.
        """
        if self.is_new:
            self.values = snapshot(self.initial_values)
            self._baseline_attachments = []
            self._tracker.reset(self.values)
            return self.values

        resp = self.service.get_item(
            self.list_name, self.item_id, self.list_url, self.field_names or None
        )
        if not resp.success or resp.data is None:
            message = resp.error or "Failed to load item data"
            if self.record_history:
                sync_log.log_load(self.list_name, self.item_id, [], error=message)
            raise LoadError(message, resp.status_code)

        self.item_data = resp.data
        mapped = to_form_values(resp.data, self.mapping)

        self.attachment_field = find_attachment_field(mapped, self.mapping, self.field_types)
        attachments = self._load_attachments()
        if attachments is not None:
            mapped[self.attachment_field] = attachments
            self._baseline_attachments = list(attachments)
        else:
            self._baseline_attachments = []

        mapped.update(self.initial_values)
        self.values = snapshot(self._coerce_attachment_field(mapped))
        self._tracker.reset(self.values)

        if self.record_history:
            sync_log.log_load(self.list_name, self.item_id, sorted(resp.data))
        return self.values

    def start_from(self, baseline: dict) -> dict:
        """Take ``baseline`` as the loaded state without calling the service.

        Used when the caller already holds the values it loaded earlier (for
        example a client posting back the form it was served).  Attachment
        entries under the attachment field become the baseline attachments.
        """
        self.attachment_field = find_attachment_field(baseline, self.mapping, self.field_types)
        self.values = snapshot(self._coerce_attachment_field(dict(baseline)))
        current = self.values.get(self.attachment_field)
        self._baseline_attachments = list(current) if isinstance(current, list) else []
        self._tracker.reset(self.values)
        return self.values

    def _coerce_attachment_field(self, values: dict) -> dict:
        field = self._attachment_field_name()
        if isinstance(values.get(field), (list, tuple)):
            values[field] = coerce_attachments(values[field])
        return values

    # -- Editing --------------------------------------------------------------

    def get_value(self, field: str) -> Any:
        return self.values.get(field)

    def set_value(self, field: str, value: Any) -> set[str]:
        """Set a form value and return the updated dirty set."""
        if field == self._attachment_field_name() and isinstance(value, (list, tuple)):
            value = coerce_attachments(value)
        self.values[field] = value
        return self._tracker.mark_changed(field, value)

    def set_values(self, values: dict) -> set[str]:
        for field, value in values.items():
            self.set_value(field, value)
        return self.dirty_fields

    def _attachment_field_name(self) -> str:
        if self.attachment_field is None:
            self.attachment_field = find_attachment_field(self.values, self.mapping, self.field_types)
        return self.attachment_field

    def attachments(self) -> list[AttachmentDescriptor]:
        current = self.values.get(self._attachment_field_name())
        return list(current) if isinstance(current, list) else []

    def add_attachment(
        self,
        name: str,
        file_handle: Any,
        size: int | None = None,
        content_type: str = "",
    ) -> AttachmentDescriptor:
        """Queue a local file for upload on the next save."""
        att = AttachmentDescriptor(
            name=name,
            size=size if size is not None else _file_size(file_handle),
            content_type=content_type,
            pending_file=file_handle,
        )
        self.set_value(self._attachment_field_name(), self.attachments() + [att])
        return att

    def remove_attachment(self, name: str) -> bool:
        """Remove an attachment (persisted or pending) by id or name."""
        current = self.attachments()
        remaining = [a for a in current if a.key != name and a.name != name]
        if len(remaining) == len(current):
            return False
        self.set_value(self._attachment_field_name(), remaining)
        return True

    def reset(self) -> None:
        """Discard edits: values go back to the baseline."""
        self.values = snapshot(self._tracker.baseline)
        self._tracker.reset()

    def reset_field(self, field: str) -> None:
        value = snapshot({field: self._tracker.baseline_value(field)})[field]
        self.set_value(field, value)

    # -- Save -----------------------------------------------------------------

    def _fail_save(self, resp: ApiResponse, default: str, fields: list[str]) -> SaveError:
        message = resp.error or default
        if self.record_history:
            sync_log.log_save(self.list_name, self.item_id, fields, error=message)
        return SaveError(message, resp.status_code)

    def save(self, before_save: Callable[[dict], dict] | None = None) -> SaveResult:
        """Persist the session.

        Args:
            before_save: Optional transform applied to a copy of the values
                         before they are mapped to a payload.

        Returns:
            A ``SaveResult``.  ``partially_applied`` is True when the record
            saved but some attachment operations failed.

        Raises:
            SaveError: the create/update call failed; attachments untouched.
            MappingConflictError: the name mapping is not injective.
        """
        data = snapshot(self.values)
        if before_save is not None:
            data = before_save(data)

        created = self.is_new
        remote = to_remote_payload(
            data,
            self.mapping,
            dirty_only=None if created else self._tracker.dirty_fields,
            baseline_attachments=self._baseline_attachments,
            field_types=self.field_types or None,
        )
        payload = remote.payload
        fields = list(payload)
        response_data: Any = None

        if created:
            resp = self.service.add_item(self.list_name, payload, self.list_url)
            if not resp.success:
                raise self._fail_save(resp, "Failed to create item", fields)
            response_data = resp.data
            saved_id = int((resp.data or {}).get("Id") or (resp.data or {}).get("ID") or 0)
        else:
            saved_id = self.item_id
            if payload:
                resp = self.service.update_item(self.list_name, self.item_id, payload, self.list_url)
                if not resp.success:
                    raise self._fail_save(resp, "Failed to update item", fields)
                response_data = resp.data

        work = AttachmentPlan(to_upload=remote.files_to_upload, to_delete=remote.files_to_delete)
        results: list[OperationResult] = []
        if not work.is_empty:
            if saved_id > 0:
                results = attachment_reconciler.execute(
                    work,
                    upload_op=lambda att: self.service.upload_attachment(
                        self.list_name, saved_id, att.pending_file, att.name, self.list_url
                    ),
                    delete_op=lambda name: self.service.delete_attachment(
                        self.list_name, saved_id, name, self.list_url
                    ),
                    pacing_seconds=self.pacing_seconds,
                    sleep=self._sleep,
                )
            else:
                logger.warning("No item id returned for %s; attachments not synced", self.list_name)
                results = [
                    OperationResult(kind="upload", name=a.name, success=False, error="No item id")
                    for a in work.to_upload
                ]

        self.item_id = saved_id
        if response_data is not None:
            self.item_data = response_data
        self._apply_attachment_results(work, results)

        if self.record_history:
            sync_log.log_save(self.list_name, saved_id, fields, results)

        return SaveResult(
            item_id=saved_id,
            created=created,
            payload=payload,
            data=response_data,
            attachment_results=results,
        )

    def _apply_attachment_results(self, work: AttachmentPlan, results: list[OperationResult]) -> None:
        """Move successful operations into the baseline and reset the dirty set.

        Failed operations keep the attachment field dirty so the next save
        retries them.
        """
        deleted = {r.name for r in results if r.kind == "delete" and r.success}
        upload_results = [r for r in results if r.kind == "upload"]

        persisted: dict[str, AttachmentDescriptor] = {}
        for att, result in zip(work.to_upload, upload_results):
            if not result.success:
                continue
            if isinstance(result.data, dict) and result.data.get("FileName"):
                persisted[att.name] = AttachmentDescriptor.from_remote(result.data)
            else:
                persisted[att.name] = AttachmentDescriptor(
                    id=att.name, name=att.name, size=att.size, content_type=att.content_type
                )

        replaced = {a.key for a in persisted.values()}
        remote_now = [
            a for a in self._baseline_attachments if a.key not in deleted and a.key not in replaced
        ]
        remote_now.extend(persisted.values())
        self._baseline_attachments = remote_now

        field = self.attachment_field
        if persisted and field and isinstance(self.values.get(field), list):
            self.values[field] = [
                persisted.pop(a.name) if a.is_pending and a.name in persisted else a
                for a in self.values[field]
            ]

        baseline = snapshot(self.values)
        has_failures = any(not r.success for r in results)
        if has_failures and field:
            baseline[field] = snapshot({field: remote_now})[field]
        self._tracker.reset(baseline)
        if has_failures and field:
            self._tracker.mark_changed(field, self.values.get(field))
