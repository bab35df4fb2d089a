"""
Webhook ingestion: one Telegram message -> messages row + queue item.

Table `messages` columns:
  id (uuid PK), chat_id, message_id, media_group_id, caption, message_url,
  is_original_caption, original_message_id, correlation_id, product_name,
  product_code, quantity, vendor_uid, purchase_date, notes, analyzed_content,
  message_media_data, telegram_data, status, processing_error, processed_at,
  created_at, updated_at
  UNIQUE (chat_id, message_id)
"""
import logging
import uuid
from typing import Optional

from mediahub.caption_analyzer import CaptionAnalyzer
from mediahub.database import Database, from_jsonb, to_date, to_jsonb
from mediahub.message_builder import build_message_media_data
from mediahub.models import MessageMediaData
from mediahub.queue_manager import QueueManager
from mediahub.retry import RetryPolicy

logger = logging.getLogger(__name__)

_INSERT_MESSAGE_SQL = """
INSERT INTO messages (
    chat_id, message_id, media_group_id, caption, message_url,
    is_original_caption, original_message_id, correlation_id,
    product_name, product_code, quantity, vendor_uid, purchase_date, notes,
    analyzed_content, message_media_data, telegram_data, status
) VALUES (
    $1, $2, $3, $4, $5,
    $6, $7, $8,
    $9, $10, $11, $12, $13, $14,
    $15::jsonb, $16::jsonb, $17::jsonb, 'pending'
)
ON CONFLICT (chat_id, message_id) DO NOTHING
RETURNING id
"""


class WebhookIngestor:
    def __init__(
        self,
        db: Database,
        analyzer: CaptionAnalyzer,
        queue: QueueManager,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self._db = db
        self._analyzer = analyzer
        self._queue = queue
        self._retry = retry_policy or RetryPolicy()

    async def find_caption_holder(self, media_group_id: str) -> Optional[dict]:
        """The group's message that carried the original caption, if stored yet."""
        row = await self._retry.run(
            lambda: self._db.fetchrow(
                """SELECT id, caption, analyzed_content FROM messages
                   WHERE media_group_id = $1 AND is_original_caption = TRUE
                   ORDER BY created_at ASC LIMIT 1""",
                media_group_id,
            )
        )
        return dict(row) if row else None

    async def _insert_message(self, payload: MessageMediaData) -> Optional[str]:
        message, analysis, meta = payload.message, payload.analysis, payload.meta
        row_id = await self._retry.run(
            lambda: self._db.fetchval(
                _INSERT_MESSAGE_SQL,
                message.chat_id,
                message.message_id,
                message.media_group_id,
                message.caption,
                message.url,
                meta.is_original_caption,
                meta.original_message_id,
                meta.correlation_id,
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
        )
        return str(row_id) if row_id is not None else None

    async def handle_message(self, message: dict) -> dict:
        correlation_id = str(uuid.uuid4())
        caption = message.get("caption")
        media_group_id = message.get("media_group_id")

        analyzed = None
        original_message_id = None
        inherited_caption = None
        is_original_caption = bool(caption)
        if media_group_id and not caption:
            holder = await self.find_caption_holder(media_group_id)
            if holder:
                analyzed = from_jsonb(holder["analyzed_content"])
                original_message_id = str(holder["id"])
                inherited_caption = holder.get("caption")
        if caption:
            analyzed = await self._analyzer.analyze(caption)

        payload = build_message_media_data(
            message,
            correlation_id,
            analyzed_content=analyzed,
            is_original_caption=is_original_caption,
            original_message_id=original_message_id,
            inherited_caption=inherited_caption,
        )

        message_row_id = await self._insert_message(payload)
        if message_row_id is None:
            logger.info(
                "[WEBHOOK] Message %s in chat %s already stored, ignoring redelivery",
                payload.message.message_id, payload.message.chat_id,
            )
            return {"ok": True, "duplicate": True}

        queued = False
        if payload.media is not None:
            queued = await self._queue.enqueue(payload, correlation_id)

        logger.info(
            "[WEBHOOK] Stored message %s (group=%s, media=%s, queued=%s)",
            payload.message.message_id, media_group_id, payload.media is not None, queued,
        )
        return {
            "ok": True,
            "message_id": message_row_id,
            "correlation_id": correlation_id,
            "queued": queued,
        }
