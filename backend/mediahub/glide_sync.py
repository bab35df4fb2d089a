"""
Glide sync jobs.

Every job is stateless and triggered over HTTP; it returns a summary and
keeps nothing in memory between runs. The Glide app/table come from the
glide_config table:

  glide_config: id (uuid PK), app_id, table_id, api_token, supabase_table_name,
                active, created_at, updated_at
  glide_sync_queue: id, table_name, record_id, operation, new_data (jsonb),
                    old_data (jsonb), priority, batch_id, status, created_at
"""
import logging
import uuid
from typing import Any, Optional

import httpx

from mediahub.caption_sync import CaptionSync
from mediahub.database import Database, to_jsonb
from mediahub.errors import RecordNotFoundError, ValidationError
from mediahub.glide_api import (
    GLIDE_COLUMNS,
    GLIDE_DIFF_COLUMNS,
    GlideAPI,
    map_glide_to_record,
    map_record_to_glide,
)
from mediahub.metrics import metrics
from mediahub.models import (
    GlideConfig,
    GlideDifference,
    MediaGroupSyncResponse,
    MissingRowsResponse,
    RecordSyncResponse,
)
from mediahub.retry import RetryPolicy

logger = logging.getLogger(__name__)

_MEDIA_COLUMNS = ", ".join(GLIDE_COLUMNS + ["telegram_media_row_id"])
_CONFIG_COLUMNS = "id, app_id, table_id, api_token, supabase_table_name, active"


def _comparable(value: Any) -> Optional[str]:
    """Glide hands back strings for most columns; compare on that footing."""
    if value is None or value == "":
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


def find_differences(local_rows: list[dict], glide_rows: list[dict]) -> list[GlideDifference]:
    """Diff telegram_media rows against Glide rows.

    A local row is matched by its stored Glide row id, falling back to the
    mirrored `id` column. Unmatched rows are missing_in_glide; matched rows
    with any differing GLIDE_DIFF_COLUMNS value are field_mismatch.
    """
    by_row_id: dict[str, dict] = {}
    by_local_id: dict[str, dict] = {}
    for row in glide_rows:
        if row.get("$rowID"):
            by_row_id[row["$rowID"]] = row
        if row.get("id"):
            by_local_id[str(row["id"])] = row

    differences = []
    for record in local_rows:
        supabase_data = map_record_to_glide(record)
        glide_row = None
        if record.get("telegram_media_row_id"):
            glide_row = by_row_id.get(record["telegram_media_row_id"])
        if glide_row is None:
            glide_row = by_local_id.get(str(record["id"]))

        if glide_row is None:
            differences.append(GlideDifference(
                record_id=str(record["id"]),
                difference_type="missing_in_glide",
                supabase_data=supabase_data,
            ))
            continue

        mismatched = [
            col for col in GLIDE_DIFF_COLUMNS
            if _comparable(supabase_data.get(col)) != _comparable(glide_row.get(col))
        ]
        if mismatched:
            differences.append(GlideDifference(
                record_id=str(record["id"]),
                difference_type="field_mismatch",
                supabase_data=supabase_data,
                glide_data=map_glide_to_record(glide_row),
            ))
    return differences


class GlideSyncService:
    def __init__(
        self,
        db: Database,
        caption_sync: CaptionSync,
        api_token: str = "",
        base_url: str = "https://api.glideapp.io/api/function",
        client: Optional[httpx.AsyncClient] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self._db = db
        self._caption_sync = caption_sync
        self._api_token = api_token
        self._base_url = base_url
        self._client = client
        self._retry = retry_policy or RetryPolicy()

    # ----------------------------------------------------------
    # Config
    # ----------------------------------------------------------

    async def load_active_config(self) -> GlideConfig:
        row = await self._retry.run(
            lambda: self._db.fetchrow(
                f"SELECT {_CONFIG_COLUMNS} FROM glide_config WHERE active = TRUE "
                "ORDER BY updated_at DESC NULLS LAST LIMIT 1"
            )
        )
        if row is None:
            raise RecordNotFoundError("No active Glide configuration found")
        return GlideConfig(**dict(row))

    async def load_config(self, config_id: str) -> GlideConfig:
        row = await self._retry.run(
            lambda: self._db.fetchrow(
                f"SELECT {_CONFIG_COLUMNS} FROM glide_config WHERE id = $1::uuid",
                config_id,
            )
        )
        if row is None:
            raise RecordNotFoundError(f"Glide configuration {config_id} not found")
        config = GlideConfig(**dict(row))
        if not config.active or not config.supabase_table_name:
            raise ValidationError("Glide configuration is not active or table is not linked")
        return config

    def api_for(self, config: GlideConfig) -> GlideAPI:
        token = config.api_token or self._api_token
        if not token:
            raise ValidationError("Glide API token is not configured")
        return GlideAPI(
            app_id=config.app_id,
            table_id=config.table_id,
            api_token=token,
            base_url=self._base_url,
            client=self._client,
        )

    async def _fetch_media(self, where: str = "", *args: Any) -> list[dict]:
        rows = await self._retry.run(
            lambda: self._db.fetch(f"SELECT {_MEDIA_COLUMNS} FROM telegram_media {where}", *args)
        )
        return [dict(r) for r in rows]

    # ----------------------------------------------------------
    # Jobs
    # ----------------------------------------------------------

    async def find_missing_rows(self) -> MissingRowsResponse:
        """Diff local media against Glide and queue every difference."""
        config = await self.load_active_config()
        api = self.api_for(config)

        glide_rows = await self._retry.run(api.query_rows)
        local_rows = await self._fetch_media()
        differences = find_differences(local_rows, glide_rows)

        if not differences:
            logger.info("[GLIDE] No differences between telegram_media and %s", config.table_id)
            return MissingRowsResponse(differences_found=0)

        batch_id = str(uuid.uuid4())
        await self._retry.run(
            lambda: self._db.executemany(
                """INSERT INTO glide_sync_queue
                       (table_name, record_id, operation, new_data, old_data, priority, batch_id)
                   VALUES ($1, $2, $3, $4::jsonb, $5::jsonb, $6, $7)""",
                [
                    (
                        "telegram_media",
                        diff.record_id,
                        "INSERT" if diff.difference_type == "missing_in_glide" else "UPDATE",
                        to_jsonb(diff.supabase_data),
                        to_jsonb(diff.glide_data),
                        2,
                        batch_id,
                    )
                    for diff in differences
                ],
            )
        )
        logger.info("[GLIDE] Queued %d differences (batch %s)", len(differences), batch_id)
        return MissingRowsResponse(differences_found=len(differences), batch_id=batch_id)

    async def sync_media_groups(self) -> MediaGroupSyncResponse:
        """Bulk caption sync, then push grouped rows already linked to Glide."""
        summary = await self._caption_sync.sync_all_media_groups()

        glide_updates = 0
        try:
            config = await self.load_active_config()
            api = self.api_for(config)
        except (RecordNotFoundError, ValidationError) as e:
            logger.info("[GLIDE] Skipping Glide push after group sync: %s", e)
            api = None

        if api is not None:
            rows = await self._fetch_media(
                "WHERE media_group_id IS NOT NULL AND telegram_media_row_id IS NOT NULL"
            )
            for record in rows:
                try:
                    await api.update_row(record["telegram_media_row_id"], map_record_to_glide(record))
                except Exception as e:
                    metrics.glide_mutations_total.inc(("update", "error"))
                    logger.warning("[GLIDE] Group member %s not pushed: %s", record["id"], e)
                    continue
                metrics.glide_mutations_total.inc(("update", "ok"))
                glide_updates += 1

        return MediaGroupSyncResponse(
            updated_groups=summary["updated_groups"],
            synced_media=summary["synced_media"],
            glide_updates=glide_updates,
        )

    async def sync_records(self, config_id: str, record_ids: Optional[list[str]] = None) -> RecordSyncResponse:
        """Push local rows to Glide: linked rows are updated, the rest added."""
        config = await self.load_config(config_id)
        api = self.api_for(config)

        if record_ids:
            records = await self._fetch_media("WHERE id = ANY($1::uuid[])", record_ids)
        else:
            records = await self._fetch_media()
        logger.info("[GLIDE] Syncing %d records to %s", len(records), config.table_id)

        response = RecordSyncResponse()
        for record in records:
            kind = "update" if record.get("telegram_media_row_id") else "add"
            try:
                values = map_record_to_glide(record)
                row_id = record.get("telegram_media_row_id")
                if row_id:
                    await self._retry.run(lambda: api.update_row(row_id, values))
                    response.updated += 1
                else:
                    row_id = await self._retry.run(lambda: api.add_row(values))
                    response.added += 1
                await self._retry.run(
                    lambda: self._db.execute(
                        """UPDATE telegram_media
                           SET telegram_media_row_id = COALESCE($2, telegram_media_row_id),
                               last_synced_at = now()
                           WHERE id = $1::uuid""",
                        str(record["id"]), row_id,
                    )
                )
                metrics.glide_mutations_total.inc((kind, "ok"))
            except Exception as e:
                metrics.glide_mutations_total.inc((kind, "error"))
                logger.error("[GLIDE] Error processing record %s: %s", record["id"], e)
                response.errors.append(f"Error processing record {record['id']}: {e}")

        logger.info(
            "[GLIDE] Sync complete: added=%d updated=%d errors=%d",
            response.added, response.updated, len(response.errors),
        )
        return response

    async def delete_row(self, row_id: str) -> None:
        config = await self.load_active_config()
        api = self.api_for(config)
        try:
            await self._retry.run(lambda: api.delete_row(row_id))
        except Exception:
            metrics.glide_mutations_total.inc(("delete", "error"))
            raise
        metrics.glide_mutations_total.inc(("delete", "ok"))
        await self._retry.run(
            lambda: self._db.execute(
                "UPDATE telegram_media SET telegram_media_row_id = NULL WHERE telegram_media_row_id = $1",
                row_id,
            )
        )
