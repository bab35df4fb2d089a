"""
Dashboard actions on a single media row: delete and caption edit.

The local database is authoritative. Telegram and Glide are mirrors, so a
failure there is reported as a warning and never blocks the local change.
"""
import logging
from typing import Optional

from mediahub.caption_analyzer import ANALYSIS_FIELDS, CaptionAnalyzer
from mediahub.caption_sync import CaptionSync
from mediahub.database import Database, affected_rows, to_date, to_jsonb
from mediahub.errors import RecordNotFoundError
from mediahub.glide_sync import GlideSyncService
from mediahub.models import CaptionUpdateResult, DeleteResult
from mediahub.telegram_api import TelegramBotAPI

logger = logging.getLogger(__name__)

_CAPTION_UPDATE_SQL = """
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
WHERE {where}
"""


class MediaActions:
    def __init__(
        self,
        db: Database,
        telegram: TelegramBotAPI,
        glide_sync: GlideSyncService,
        analyzer: CaptionAnalyzer,
        caption_sync: CaptionSync,
    ) -> None:
        self._db = db
        self._telegram = telegram
        self._glide_sync = glide_sync
        self._analyzer = analyzer
        self._caption_sync = caption_sync

    async def _get_media(self, media_id: str):
        row = await self._db.fetchrow(
            """SELECT id, chat_id, message_id, media_group_id, telegram_media_row_id
               FROM telegram_media WHERE id = $1::uuid""",
            media_id,
        )
        if row is None:
            raise RecordNotFoundError(f"Media {media_id} not found")
        return row

    async def delete_media(
        self,
        media_id: str,
        delete_from_telegram: bool = False,
        delete_from_glide: bool = False,
    ) -> DeleteResult:
        row = await self._get_media(media_id)
        warning: Optional[str] = None

        if delete_from_telegram and row["chat_id"] and row["message_id"]:
            try:
                await self._telegram.delete_message(row["chat_id"], row["message_id"])
            except Exception as e:
                logger.warning("[MEDIA] Telegram delete failed for %s: %s", media_id, e)
                warning = f"Telegram deletion failed: {e}"

        if delete_from_glide and row["telegram_media_row_id"]:
            try:
                await self._glide_sync.delete_row(row["telegram_media_row_id"])
            except Exception as e:
                logger.warning("[MEDIA] Glide delete failed for %s: %s", media_id, e)
                warning = warning or f"Glide deletion failed: {e}"

        status = await self._db.execute("DELETE FROM telegram_media WHERE id = $1::uuid", media_id)
        deleted = affected_rows(status) == 1
        logger.info("[MEDIA] Deleted media %s (telegram=%s, glide=%s)",
                    media_id, delete_from_telegram, delete_from_glide)
        return DeleteResult(deleted=deleted, warning=warning)

    async def update_caption(self, media_id: str, caption: Optional[str]) -> CaptionUpdateResult:
        row = await self._get_media(media_id)

        analyzed = await self._analyzer.analyze(caption) or {}
        args = [
            caption,
            *(analyzed.get(field) for field in ANALYSIS_FIELDS[:4]),
            to_date(analyzed.get("purchase_date")),
            analyzed.get("notes"),
            to_jsonb(analyzed or None),
        ]

        await self._db.execute(
            _CAPTION_UPDATE_SQL.format(table="telegram_media", where="id = $9::uuid"),
            *args, media_id,
        )
        if row["chat_id"] and row["message_id"]:
            # Keep the message row current so group sync picks up the edit
            await self._db.execute(
                _CAPTION_UPDATE_SQL.format(table="messages", where="chat_id = $9 AND message_id = $10"),
                *args, row["chat_id"], row["message_id"],
            )

        warning: Optional[str] = None
        if row["chat_id"] and row["message_id"]:
            try:
                await self._telegram.edit_message_caption(row["chat_id"], row["message_id"], caption)
            except Exception as e:
                logger.warning("[MEDIA] Telegram caption edit failed for %s: %s", media_id, e)
                warning = f"Telegram caption update failed: {e}"

        if row["media_group_id"]:
            await self._caption_sync.sync_media_group_captions(row["media_group_id"])

        return CaptionUpdateResult(media_id=media_id, caption=caption, warning=warning)
