"""
Glide API client and telegram_media <-> Glide row mapping.

Glide is treated as an opaque sink/source: mutations go through
mutateTables, reads through queryTables.
"""
import json
import logging
from typing import Any, Optional

import httpx

from mediahub.errors import GlideAPIError

logger = logging.getLogger(__name__)

# telegram_media columns mirrored into Glide, in Glide column order
GLIDE_COLUMNS = [
    "id",
    "file_id",
    "file_unique_id",
    "file_type",
    "public_url",
    "caption",
    "product_name",
    "product_code",
    "quantity",
    "vendor_uid",
    "purchase_date",
    "notes",
    "analyzed_content",
    "message_url",
    "media_group_id",
    "processed",
    "processing_error",
    "created_at",
    "updated_at",
]

# Stored as JSON strings on the Glide side
GLIDE_JSON_COLUMNS = {"analyzed_content"}

# Columns compared when diffing local rows against Glide
GLIDE_DIFF_COLUMNS = [
    "caption",
    "product_name",
    "product_code",
    "quantity",
    "vendor_uid",
    "purchase_date",
    "notes",
    "public_url",
]


def _glide_value(column: str, value: Any) -> Any:
    if value is None:
        return None
    if column in GLIDE_JSON_COLUMNS:
        return value if isinstance(value, str) else json.dumps(value, default=str)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if not isinstance(value, (str, int, float, bool)):
        return str(value)
    return value


def map_record_to_glide(record: dict) -> dict:
    """Map a telegram_media row to Glide columnValues."""
    return {col: _glide_value(col, record.get(col)) for col in GLIDE_COLUMNS}


def map_glide_to_record(row: dict, row_id: Optional[str] = None) -> dict:
    """Map a Glide row back to telegram_media fields."""
    record = {col: row.get(col) for col in GLIDE_COLUMNS}
    raw = record.get("analyzed_content")
    if isinstance(raw, str) and raw:
        try:
            record["analyzed_content"] = json.loads(raw)
        except json.JSONDecodeError:
            record["analyzed_content"] = None
    record["telegram_media_row_id"] = row_id or row.get("$rowID")
    return record


class GlideAPI:
    def __init__(
        self,
        app_id: str,
        table_id: str,
        api_token: str,
        base_url: str = "https://api.glideapp.io/api/function",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.app_id = app_id
        self.table_id = table_id
        self._token = api_token
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def _post(self, endpoint: str, body: dict) -> Any:
        try:
            resp = await self._client.post(
                f"{self._base_url}/{endpoint}",
                json=body,
                headers={"Authorization": f"Bearer {self._token}"},
            )
        except httpx.HTTPError as e:
            raise GlideAPIError(f"Glide {endpoint} request failed: {e}") from e
        if resp.status_code >= 400:
            logger.error("Glide API error: status=%d body=%s", resp.status_code, resp.text[:500])
            raise GlideAPIError(f"Glide API error: {resp.status_code} {resp.text[:200]}", resp.status_code)
        return resp.json()

    async def mutate(self, mutation: dict) -> Any:
        return await self._post("mutateTables", {"appID": self.app_id, "mutations": [mutation]})

    async def add_row(self, column_values: dict) -> Optional[str]:
        """Add a row; returns the new Glide row ID when Glide reports one."""
        data = await self.mutate({
            "kind": "add-row-to-table",
            "tableName": self.table_id,
            "columnValues": column_values,
        })
        if isinstance(data, list) and data:
            return data[0].get("rowID")
        return None

    async def update_row(self, row_id: str, column_values: dict) -> None:
        await self.mutate({
            "kind": "set-columns-in-row",
            "tableName": self.table_id,
            "rowID": row_id,
            "columnValues": column_values,
        })

    async def delete_row(self, row_id: str) -> None:
        await self.mutate({
            "kind": "delete-row",
            "tableName": self.table_id,
            "rowID": row_id,
        })
        logger.info("Deleted Glide row %s from %s", row_id, self.table_id)

    async def query_rows(self) -> list[dict]:
        data = await self._post(
            "queryTables",
            {"appID": self.app_id, "queries": [{"tableName": self.table_id, "utc": True}]},
        )
        if isinstance(data, list) and data:
            return data[0].get("rows", [])
        return []

    async def close(self) -> None:
        if not self._client.is_closed:
            await self._client.aclose()
