"""
Media processor: one queued payload -> stored file + telegram_media row.

Steps run sequentially and each is retried on its own:
  1. download the file from Telegram by file_id
  2. upload it to Storage under its deterministic name
  3. upsert the telegram_media row (payload + flattened columns)

A row that already exists for the file_unique_id short-circuits the whole
thing. Failures are reported in the ProcessingResult, never raised.
"""
import logging
from typing import Optional

from mediahub.database import Database, to_date, to_jsonb
from mediahub.models import MessageMediaData, ProcessingResult
from mediahub.retry import RetryPolicy
from mediahub.storage import StorageUploader
from mediahub.telegram_api import TelegramBotAPI

logger = logging.getLogger(__name__)

_REQUIRED_MEDIA_FIELDS = ("file_id", "file_unique_id", "file_type")

_UPSERT_MEDIA_SQL = """
INSERT INTO telegram_media (
    file_id, file_unique_id, file_type, public_url, storage_path, mime_type,
    caption, is_original_caption, original_message_id, correlation_id,
    message_id, chat_id, media_group_id, message_url,
    product_name, product_code, quantity, vendor_uid, purchase_date, notes,
    analyzed_content, message_media_data, telegram_data, processed
) VALUES (
    $1, $2, $3, $4, $5, $6,
    $7, $8, $9, $10,
    $11, $12, $13, $14,
    $15, $16, $17, $18, $19, $20,
    $21::jsonb, $22::jsonb, $23::jsonb, TRUE
)
ON CONFLICT (file_unique_id) DO UPDATE SET
    file_id = EXCLUDED.file_id,
    public_url = EXCLUDED.public_url,
    storage_path = EXCLUDED.storage_path,
    message_media_data = EXCLUDED.message_media_data,
    processed = TRUE,
    processing_error = NULL,
    updated_at = now()
RETURNING id
"""


def missing_media_fields(payload: MessageMediaData) -> list[str]:
    media = payload.media
    if media is None:
        return list(_REQUIRED_MEDIA_FIELDS)
    return [name for name in _REQUIRED_MEDIA_FIELDS if not getattr(media, name)]


class MediaProcessor:
    def __init__(
        self,
        db: Database,
        telegram: TelegramBotAPI,
        storage: StorageUploader,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self._db = db
        self._telegram = telegram
        self._storage = storage
        self._retry = retry_policy or RetryPolicy()

    async def find_existing(self, file_unique_id: str) -> Optional[str]:
        existing = await self._retry.run(
            lambda: self._db.fetchval(
                "SELECT id FROM telegram_media WHERE file_unique_id = $1",
                file_unique_id,
            )
        )
        return str(existing) if existing is not None else None

    async def process_media_item(self, payload: MessageMediaData) -> ProcessingResult:
        missing = missing_media_fields(payload)
        if missing:
            error = f"Missing required media fields: {', '.join(missing)}"
            logger.warning("[MEDIA] %s (message %s)", error, payload.message.message_id)
            return ProcessingResult(success=False, error=error)

        media = payload.media
        try:
            existing_id = await self.find_existing(media.file_unique_id)
            if existing_id:
                logger.info("[MEDIA] %s already stored as %s, skipping download",
                            media.file_unique_id, existing_id)
                return ProcessingResult(success=True, media_id=existing_id)

            buffer = await self._retry.run(lambda: self._telegram.download_file(media.file_id))
            upload = await self._retry.run(
                lambda: self._storage.upload(
                    buffer, media.file_unique_id, media.file_type, media.mime_type
                )
            )

            enriched = payload.model_copy(deep=True)
            enriched.media.public_url = upload.public_url
            enriched.media.storage_path = upload.storage_path

            media_id = await self._retry.run(lambda: self._write_record(enriched))
        except Exception as e:
            logger.error("[MEDIA] Processing failed for %s: %s", media.file_unique_id, e)
            return ProcessingResult(success=False, error=str(e))

        logger.info("[MEDIA] Stored %s as telegram_media %s", media.file_unique_id, media_id)
        return ProcessingResult(success=True, media_id=media_id)

    async def _write_record(self, payload: MessageMediaData) -> str:
        message, analysis, meta, media = payload.message, payload.analysis, payload.meta, payload.media
        row_id = await self._db.fetchval(
            _UPSERT_MEDIA_SQL,
            media.file_id,
            media.file_unique_id,
            media.file_type,
            media.public_url,
            media.storage_path,
            media.mime_type,
            message.caption,
            meta.is_original_caption,
            meta.original_message_id,
            meta.correlation_id,
            message.message_id,
            message.chat_id,
            message.media_group_id,
            message.url,
            analysis.product_name,
            analysis.product_code,
            analysis.quantity,
            analysis.vendor_uid,
            to_date(analysis.purchase_date),
            analysis.notes,
            to_jsonb(analysis.analyzed_content),
            payload.model_dump_json(),
            to_jsonb(payload.telegram_data),
        )
        return str(row_id)
