"""
Media group caption sync.

Telegram attaches the caption of an album to only one of its messages. The
newest message carrying any product information becomes the source, and its
fields overwrite every member of the group in both messages and
telegram_media. Overwrite is total: a null on the source clears the member.
"""
import logging
from typing import Any, Optional

from mediahub.database import Database, affected_rows, to_date, to_jsonb
from mediahub.retry import RetryPolicy

logger = logging.getLogger(__name__)

# Any non-null value here marks a row as carrying group information
INFO_FIELDS = (
    "caption",
    "product_name",
    "product_code",
    "analyzed_content",
    "vendor_uid",
    "purchase_date",
    "notes",
)

# Fields copied to every member
SYNC_FIELDS = (
    "caption",
    "product_name",
    "product_code",
    "quantity",
    "vendor_uid",
    "purchase_date",
    "notes",
    "analyzed_content",
)

_SELECT_COLUMNS = "id, " + ", ".join(SYNC_FIELDS)

_OVERWRITE_SQL = """
UPDATE {table} SET
    caption = $1,
    product_name = $2,
    product_code = $3,
    quantity = $4,
    vendor_uid = $5,
    purchase_date = $6,
    notes = $7,
    analyzed_content = $8::jsonb,
    updated_at = now()
WHERE media_group_id = $9
"""

_UPSERT_GROUP_SQL = """
INSERT INTO media_groups (
    media_group_id, caption, product_name, product_code, quantity,
    vendor_uid, purchase_date, notes, analyzed_content, media_count, updated_at
) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9::jsonb, $10, now())
ON CONFLICT (media_group_id) DO UPDATE SET
    caption = EXCLUDED.caption,
    product_name = EXCLUDED.product_name,
    product_code = EXCLUDED.product_code,
    quantity = EXCLUDED.quantity,
    vendor_uid = EXCLUDED.vendor_uid,
    purchase_date = EXCLUDED.purchase_date,
    notes = EXCLUDED.notes,
    analyzed_content = EXCLUDED.analyzed_content,
    media_count = EXCLUDED.media_count,
    updated_at = now()
"""


def pick_source(rows: list) -> Optional[dict]:
    """First row (rows are newest first) carrying any group information."""
    for row in rows:
        record = dict(row)
        if any(record.get(field) is not None for field in INFO_FIELDS):
            return record
    return None


def _overwrite_args(source: dict, media_group_id: str) -> list[Any]:
    return [
        source.get("caption"),
        source.get("product_name"),
        source.get("product_code"),
        source.get("quantity"),
        source.get("vendor_uid"),
        to_date(source.get("purchase_date")),
        source.get("notes"),
        to_jsonb(source.get("analyzed_content")),
        media_group_id,
    ]


class CaptionSync:
    def __init__(self, db: Database, retry_policy: Optional[RetryPolicy] = None) -> None:
        self._db = db
        self._retry = retry_policy or RetryPolicy()

    async def _overwrite_members(self, source: dict, media_group_id: str) -> tuple[int, int]:
        args = _overwrite_args(source, media_group_id)
        messages_status = await self._retry.run(
            lambda: self._db.execute(_OVERWRITE_SQL.format(table="messages"), *args)
        )
        media_status = await self._retry.run(
            lambda: self._db.execute(_OVERWRITE_SQL.format(table="telegram_media"), *args)
        )
        return affected_rows(messages_status), affected_rows(media_status)

    async def sync_media_group_captions(self, media_group_id: str) -> Optional[dict]:
        """Propagate the group's newest information to all members.

        Returns the synced fields with row counts, or None when no message of
        the group carries any information (nothing is written then).
        """
        rows = await self._retry.run(
            lambda: self._db.fetch(
                f"SELECT {_SELECT_COLUMNS} FROM messages "
                "WHERE media_group_id = $1 ORDER BY created_at DESC",
                media_group_id,
            )
        )
        source = pick_source(rows)
        if source is None:
            logger.info("[SYNC] Media group %s has no caption information yet", media_group_id)
            return None

        messages_updated, media_updated = await self._overwrite_members(source, media_group_id)
        logger.info(
            "[SYNC] Media group %s synced from message %s (%d messages, %d media)",
            media_group_id, source["id"], messages_updated, media_updated,
        )
        result = {field: source.get(field) for field in SYNC_FIELDS}
        result.update({
            "media_group_id": media_group_id,
            "source_id": str(source["id"]),
            "messages_updated": messages_updated,
            "media_updated": media_updated,
        })
        return result

    async def sync_all_media_groups(self) -> dict:
        """Bulk pass over every media group found in telegram_media."""
        group_rows = await self._retry.run(
            lambda: self._db.fetch(
                "SELECT DISTINCT media_group_id FROM telegram_media "
                "WHERE media_group_id IS NOT NULL"
            )
        )

        updated_groups = 0
        synced_media = 0
        for group_row in group_rows:
            media_group_id = group_row["media_group_id"]
            members = await self._retry.run(
                lambda: self._db.fetch(
                    f"SELECT {_SELECT_COLUMNS} FROM telegram_media "
                    "WHERE media_group_id = $1 ORDER BY created_at DESC",
                    media_group_id,
                )
            )
            source = pick_source(members)
            if source is None:
                continue

            group_args = _overwrite_args(source, media_group_id)
            await self._retry.run(
                lambda: self._db.execute(
                    _UPSERT_GROUP_SQL, media_group_id, *group_args[:-1], len(members)
                )
            )
            _, media_updated = await self._overwrite_members(source, media_group_id)
            updated_groups += 1
            synced_media += media_updated

        logger.info("[SYNC] Bulk group sync: %d groups, %d media rows", updated_groups, synced_media)
        return {"updated_groups": updated_groups, "synced_media": synced_media}
