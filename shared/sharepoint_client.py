"""SharePoint REST client implementing the list service contract.

Talks to the SharePoint ``_api/web/lists`` endpoints with requests, using a
bearer token and verbose OData JSON.  Every public method returns an
``ApiResponse``; HTTP and network errors are converted to failed results
with the remote status code and message.

Credentials are read from settings (see ``shared.config``):
    FORMSYNC_SITE_URL, FORMSYNC_ACCESS_TOKEN, FORMSYNC_REQUEST_TIMEOUT
"""

from __future__ import annotations

import re
from typing import Any
from urllib.parse import quote

import requests

from shared.config import get_settings
from shared.list_service import ApiResponse, read_file_bytes

_VERBOSE_JSON = "application/json;odata=verbose"
_ILLEGAL_FILE_CHARS = re.compile(r'[\\/:*?"<>|]')
_GUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)
MAX_FILE_NAME = 255


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def extract_web_url(url: str | None) -> str | None:
    """Return the web URL for a list URL ("https://x/sites/a/Lists/Foo" -> "https://x/sites/a")."""
    if not url:
        return None
    m = re.match(r"^(.+?)/lists/", url, re.IGNORECASE)
    if m:
        return m.group(1)
    return url.rstrip("/")


def sanitize_file_name(name: str) -> str:
    """Make a file name acceptable as a list attachment name.

    Illegal characters become underscores and names longer than 255
    characters are truncated, keeping the extension.
    """
    if len(name) > MAX_FILE_NAME:
        stem, dot, ext = name.rpartition(".")
        if dot and stem:
            name = stem[: MAX_FILE_NAME - len(ext) - 1] + "." + ext
        else:
            name = name[:MAX_FILE_NAME]
    return _ILLEGAL_FILE_CHARS.sub("_", name)


def _odata_literal(value: str) -> str:
    return quote(value.replace("'", "''"), safe="")


def _unwrap(body: Any) -> Any:
    """Strip the verbose ``{"d": ...}`` and ``{"results": [...]}`` envelopes."""
    if isinstance(body, dict) and "d" in body:
        body = body["d"]
    if isinstance(body, dict) and set(body) <= {"results", "__next"} and "results" in body:
        return body["results"]
    return body


def _error_message(resp: requests.Response | None, default: str) -> str:
    if resp is None:
        return default
    try:
        body = resp.json()
    except ValueError:
        return resp.text or default
    error = body.get("error") or body.get("odata.error") or {}
    message = error.get("message")
    if isinstance(message, dict):
        return message.get("value") or default
    return message or default


def _expand_kind(raw: dict | None) -> str:
    """Return "user", "lookup" or "plain" for select/expand purposes."""
    if not raw:
        return "plain"
    type_lower = str(raw.get("TypeAsString") or raw.get("Type") or "").lower()
    if raw.get("PrincipalType") is not None or "user" in type_lower or "person" in type_lower:
        return "user"
    if (raw.get("LookupListId") or raw.get("LookupList")) and raw.get("IsDependentLookup") is not True:
        return "lookup"
    return "plain"


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class SharePointListService:
    """List service for SharePoint Online / on-premises REST APIs."""

    def __init__(
        self,
        site_url: str,
        access_token: str = "",
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ):
        self.site_url = site_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": _VERBOSE_JSON, "Content-Type": _VERBOSE_JSON})
        if access_token:
            self.session.headers["Authorization"] = f"Bearer {access_token}"
        self._entity_types: dict[tuple[str, str], str] = {}

    # -- URL building -------------------------------------------------------

    def _web(self, list_url: str | None) -> str:
        return extract_web_url(list_url) or self.site_url

    def _list_endpoint(self, list_name: str, list_url: str | None) -> str:
        return f"{self._web(list_url)}/_api/web/lists/getbytitle('{_odata_literal(list_name)}')"

    def _item_endpoint(self, list_name: str, item_id: int, list_url: str | None) -> str:
        return f"{self._list_endpoint(list_name, list_url)}/items({int(item_id)})"

    # -- Transport ----------------------------------------------------------

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        resp.raise_for_status()
        if not resp.content:
            return None
        return _unwrap(resp.json())

    def _call(self, default_error: str, fn, success_status: int = 200) -> ApiResponse:
        try:
            return ApiResponse.ok(fn(), success_status)
        except requests.HTTPError as exc:
            resp = exc.response
            status = resp.status_code if resp is not None else 500
            return ApiResponse.fail(_error_message(resp, default_error), status)
        except requests.RequestException as exc:
            return ApiResponse.fail(f"{default_error}: {exc}", 500)
        except (ValueError, KeyError, TypeError) as exc:
            # Unparseable or unexpected response body
            return ApiResponse.fail(f"{default_error}: {exc}", 502)

    def _entity_type(self, list_name: str, list_url: str | None) -> str:
        key = (self._web(list_url), list_name)
        if key not in self._entity_types:
            data = self._request(
                "GET",
                f"{self._list_endpoint(list_name, list_url)}?$select=ListItemEntityTypeFullName",
            )
            self._entity_types[key] = data["ListItemEntityTypeFullName"]
        return self._entity_types[key]

    # -- Items --------------------------------------------------------------

    def _select_expand(self, list_name: str, field_names: list[str], list_url: str | None) -> dict:
        select: list[str] = []
        expand: list[str] = []
        for name in field_names:
            try:
                raw = self._request(
                    "GET",
                    f"{self._list_endpoint(list_name, list_url)}"
                    f"/fields/getbyinternalnameortitle('{_odata_literal(name)}')",
                )
            except requests.RequestException:
                raw = None
            kind = _expand_kind(raw)
            select.append(name)
            if kind == "user":
                select.extend([f"{name}/Id", f"{name}/Title", f"{name}/Name"])
                expand.append(name)
            elif kind == "lookup":
                select.extend([f"{name}/Id", f"{name}/Title"])
                expand.append(name)
        if "Id" not in select:
            select.insert(0, "Id")
        params = {"$select": ",".join(select)}
        if expand:
            params["$expand"] = ",".join(expand)
        return params

    def get_item(
        self,
        list_name: str,
        item_id: int,
        list_url: str | None = None,
        field_names: list[str] | None = None,
    ) -> ApiResponse:
        def fetch():
            params = (
                self._select_expand(list_name, field_names, list_url)
                if field_names
                else {"$select": "*"}
            )
            return self._request("GET", self._item_endpoint(list_name, item_id, list_url), params=params)

        return self._call("Failed to fetch list item", fetch)

    def add_item(self, list_name: str, payload: dict, list_url: str | None = None) -> ApiResponse:
        def create():
            body = {"__metadata": {"type": self._entity_type(list_name, list_url)}, **payload}
            return self._request("POST", f"{self._list_endpoint(list_name, list_url)}/items", json=body)

        return self._call("Failed to create list item", create, 201)

    def update_item(
        self, list_name: str, item_id: int, payload: dict, list_url: str | None = None
    ) -> ApiResponse:
        def update():
            url = self._item_endpoint(list_name, item_id, list_url)
            body = {"__metadata": {"type": self._entity_type(list_name, list_url)}, **payload}
            self._request(
                "POST", url, json=body, headers={"X-HTTP-Method": "MERGE", "IF-MATCH": "*"}
            )
            return self._request("GET", url)

        return self._call("Failed to update list item", update)

    # -- Fields -------------------------------------------------------------

    def get_field_metadata(
        self, list_name: str, field_name: str, list_url: str | None = None
    ) -> ApiResponse:
        def fetch():
            raw = self._request(
                "GET",
                f"{self._list_endpoint(list_name, list_url)}"
                f"/fields/getbyinternalnameortitle('{_odata_literal(field_name)}')",
            )
            lookup_list = raw.get("LookupList")
            if lookup_list and _GUID_RE.match(lookup_list.strip("{}")):
                # Resolve the lookup target's title; keep the GUID if that fails
                try:
                    target = self._request(
                        "GET",
                        f"{self._web(list_url)}/_api/web/lists(guid'{lookup_list.strip('{}')}')"
                        "?$select=Title",
                    )
                    raw["LookupListName"] = target.get("Title")
                except requests.RequestException:
                    pass
            return raw

        return self._call("Failed to fetch field metadata", fetch)

    def get_list_fields(self, list_name: str, list_url: str | None = None) -> ApiResponse:
        def fetch():
            return self._request(
                "GET",
                f"{self._list_endpoint(list_name, list_url)}/fields",
                params={"$filter": "Hidden eq false and ReadOnlyField eq false"},
            )

        return self._call("Failed to fetch list fields", fetch)

    # -- Attachments --------------------------------------------------------

    def get_attachments(
        self, list_name: str, item_id: int, list_url: str | None = None
    ) -> ApiResponse:
        def fetch():
            atts = self._request(
                "GET", f"{self._item_endpoint(list_name, item_id, list_url)}/AttachmentFiles"
            )
            return [
                {
                    "FileName": a.get("FileName"),
                    "ServerRelativeUrl": a.get("ServerRelativeUrl"),
                    "FileSizeBytes": a.get("FileSizeBytes") or a.get("Length") or 0,
                    "ContentType": a.get("ContentType") or "",
                }
                for a in atts or []
            ]

        return self._call("Failed to load attachment files", fetch)

    def upload_attachment(
        self,
        list_name: str,
        item_id: int,
        file_handle: Any,
        name: str,
        list_url: str | None = None,
    ) -> ApiResponse:
        def upload():
            file_name = sanitize_file_name(name)
            base = f"{self._item_endpoint(list_name, item_id, list_url)}/AttachmentFiles"

            # Replace an existing attachment with the same name
            try:
                existing = self._request("GET", base) or []
                if any(a.get("FileName") == file_name for a in existing):
                    self._request(
                        "POST",
                        f"{base}/getByFileName('{_odata_literal(file_name)}')",
                        headers={"X-HTTP-Method": "DELETE"},
                    )
            except requests.RequestException:
                pass

            return self._request(
                "POST",
                f"{base}/add(FileName='{_odata_literal(file_name)}')",
                data=read_file_bytes(file_handle),
                headers={"Content-Type": "application/octet-stream"},
            )

        return self._call("Failed to upload file", upload)

    def delete_attachment(
        self, list_name: str, item_id: int, name: str, list_url: str | None = None
    ) -> ApiResponse:
        def delete():
            self._request(
                "POST",
                f"{self._item_endpoint(list_name, item_id, list_url)}"
                f"/AttachmentFiles/getByFileName('{_odata_literal(name)}')",
                headers={"X-HTTP-Method": "DELETE", "IF-MATCH": "*"},
            )
            return {"deleted": True, "file_name": name}

        return self._call("Failed to delete file", delete)


# Cache the client so the requests session is reused across calls
_service: SharePointListService | None = None


def get_service() -> SharePointListService:
    """Return a client configured from settings (cached)."""
    global _service
    if _service is None:
        settings = get_settings()
        _service = SharePointListService(
            site_url=settings.site_url,
            access_token=settings.access_token,
            timeout=settings.request_timeout,
        )
    return _service


def reset_connection() -> None:
    """Force a fresh client on next call (e.g. after token rotation)."""
    global _service
    _service = None
