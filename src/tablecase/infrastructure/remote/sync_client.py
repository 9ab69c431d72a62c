from __future__ import annotations

import base64
import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from typing import Any

from tablecase.core.config import DEFAULT_FETCH_LIMIT, DEFAULT_HTTP_TIMEOUT_SECONDS
from tablecase.core.errors import RemoteFetchError
from tablecase.domain.models.endpoint import EndpointInfo
from tablecase.domain.models.export import PageResult

logger = logging.getLogger(__name__)

ROWS_KEY = "rows"
RESUME_CURSOR_KEY = "webSafeResumeCursor"
HAS_MORE_KEY = "hasMoreResults"
ORDERED_COLUMNS_KEY = "orderedColumns"

# Row metadata carried next to orderedColumns, exported under "_" prefixed names.
METADATA_COLUMNS = {
    "id": "_id",
    "rowETag": "_row_etag",
    "formId": "_form_id",
    "locale": "_locale",
    "savepointType": "_savepoint_type",
    "savepointTimestamp": "_savepoint_timestamp",
    "savepointCreator": "_savepoint_creator",
}


class SyncClient:
    """Minimal cloud endpoint client for paginated table row retrieval."""

    def __init__(
        self,
        endpoint: EndpointInfo,
        *,
        fetch_limit: int = DEFAULT_FETCH_LIMIT,
        timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
    ) -> None:
        self.endpoint = endpoint
        self.fetch_limit = fetch_limit
        self.timeout_seconds = timeout_seconds

    def fetch_row_page(self, table_id: str, cursor: str | None) -> PageResult:
        params: dict[str, str] = {"fetchLimit": str(self.fetch_limit)}
        if cursor:
            params["cursor"] = cursor
        payload = self._get_json(f"tables/{urllib.parse.quote(table_id, safe='')}/rows", params)

        rows = payload.get(ROWS_KEY)
        if not isinstance(rows, list):
            raise RemoteFetchError(f"Row page for table {table_id} has no '{ROWS_KEY}' list.")
        has_more = payload.get(HAS_MORE_KEY)
        if not isinstance(has_more, bool):
            raise RemoteFetchError(f"Row page for table {table_id} has no boolean '{HAS_MORE_KEY}'.")

        next_cursor = payload.get(RESUME_CURSOR_KEY)
        if not isinstance(next_cursor, str) or not next_cursor:
            next_cursor = None

        return PageResult(
            rows=[flatten_row(row) for row in rows],
            next_cursor=next_cursor,
            has_more=has_more,
        )

    def list_table_ids(self) -> list[str]:
        payload = self._get_json("tables", {})
        tables = payload.get("tables")
        if not isinstance(tables, list):
            raise RemoteFetchError("Table listing has no 'tables' list.")
        return [str(item["tableId"]) for item in tables if isinstance(item, dict) and "tableId" in item]

    def _url(self, relative: str, params: dict[str, str]) -> str:
        base = self.endpoint.server_url.rstrip("/")
        app_id = urllib.parse.quote(self.endpoint.app_id, safe="")
        url = f"{base}/odktables/{app_id}/{relative}"
        if params:
            url = f"{url}?{urllib.parse.urlencode(params)}"
        return url

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if not self.endpoint.is_anonymous:
            token = f"{self.endpoint.username}:{self.endpoint.password}".encode("utf-8")
            headers["Authorization"] = "Basic " + base64.b64encode(token).decode("ascii")
        return headers

    def _get_json(self, relative: str, params: dict[str, str]) -> dict[str, Any]:
        url = self._url(relative, params)
        request = urllib.request.Request(url, headers=self._headers(), method="GET")
        logger.debug("GET %s", url)
        try:
            body = _urlopen(request, self.timeout_seconds)
        except urllib.error.HTTPError as exc:
            raise RemoteFetchError(f"Cloud endpoint returned HTTP {exc.code} for {url}") from exc
        except (urllib.error.URLError, TimeoutError, ValueError) as exc:
            raise RemoteFetchError(f"Cloud endpoint request failed for {url}: {exc}") from exc

        try:
            payload = json.loads(body.decode("utf-8"))
        except ValueError as exc:
            raise RemoteFetchError(f"Cloud endpoint returned invalid JSON for {url}: {exc}") from exc
        if not isinstance(payload, dict):
            raise RemoteFetchError(f"Cloud endpoint returned a non-object JSON payload for {url}")
        return payload


def flatten_row(row: object) -> object:
    """Turn an ``orderedColumns`` row into a flat column -> value mapping.

    Rows of any other shape are returned untouched so the row store can
    report them as malformed.
    """
    if not isinstance(row, dict):
        return row
    ordered = row.get(ORDERED_COLUMNS_KEY)
    if not isinstance(ordered, list):
        return row
    if not all(isinstance(entry, dict) and "column" in entry for entry in ordered):
        return row

    flat: dict[str, object] = {str(entry["column"]): entry.get("value") for entry in ordered}
    for source_key, column in METADATA_COLUMNS.items():
        if source_key in row:
            flat[column] = row[source_key]
    return flat


def _urlopen(request: urllib.request.Request, timeout: float) -> bytes:
    with urllib.request.urlopen(request, timeout=timeout) as response:
        return response.read()
