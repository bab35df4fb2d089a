"""
Unified processing queue.

Table `unified_processing_queue` columns:
  id (uuid PK), queue_type, message_media_data (jsonb), status, correlation_id,
  chat_id, message_id, priority, retry_count, error_message, processed_at,
  created_at, updated_at
  UNIQUE (message_id, correlation_id)

Workers must claim an item (pending -> processing in one conditional UPDATE)
before touching it, so concurrent drains never process the same item twice.
"""
import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

import asyncpg
from pydantic import ValidationError as PydanticValidationError

from mediahub.caption_sync import CaptionSync
from mediahub.database import Database, affected_rows
from mediahub.errors import ConflictError
from mediahub.media_processor import MediaProcessor
from mediahub.metrics import metrics
from mediahub.models import (
    DrainResult,
    MessageMediaData,
    MessageStatus,
    QueueItem,
    QueueStatus,
    QueueType,
)
from mediahub.retry import RetryPolicy
from mediahub.status import StatusUpdater

logger = logging.getLogger(__name__)

_QUEUE_COLUMNS = (
    "id, queue_type, message_media_data, status, correlation_id, chat_id, "
    "message_id, priority, retry_count, error_message, created_at"
)


class QueueManager:
    def __init__(
        self,
        db: Database,
        processor: MediaProcessor,
        caption_sync: CaptionSync,
        retry_policy: Optional[RetryPolicy] = None,
        status_updater: Optional[StatusUpdater] = None,
    ) -> None:
        self._db = db
        self._processor = processor
        self._caption_sync = caption_sync
        self._retry = retry_policy or RetryPolicy()
        self._status = status_updater

    async def enqueue(
        self,
        payload: MessageMediaData,
        correlation_id: str,
        queue_type: QueueType = QueueType.MEDIA,
    ) -> bool:
        """Insert a pending item. Returns False when it was already queued."""
        grouped = bool(payload.message.media_group_id)
        if grouped:
            queue_type = QueueType.MEDIA_GROUP
        try:
            await self._insert_item(payload, correlation_id, queue_type, 2 if grouped else 1)
        except ConflictError:
            logger.info(
                "[QUEUE] Message %s (correlation %s) already queued, skipping",
                payload.message.message_id, correlation_id,
            )
            return False
        logger.info("[QUEUE] Queued message %s as %s", payload.message.message_id, queue_type.value)
        return True

    async def _insert_item(
        self, payload: MessageMediaData, correlation_id: str, queue_type: QueueType, priority: int
    ) -> None:
        try:
            await self._db.execute(
                """INSERT INTO unified_processing_queue
                       (queue_type, message_media_data, status, correlation_id,
                        chat_id, message_id, priority)
                   VALUES ($1, $2::jsonb, $3, $4, $5, $6, $7)""",
                queue_type.value,
                payload.model_dump_json(),
                QueueStatus.PENDING.value,
                correlation_id,
                payload.message.chat_id,
                payload.message.message_id,
                priority,
            )
        except asyncpg.UniqueViolationError as e:
            raise ConflictError(str(e)) from e

    async def fetch_pending(self, limit: int = 10) -> list[QueueItem]:
        rows = await self._retry.run(
            lambda: self._db.fetch(
                f"""SELECT {_QUEUE_COLUMNS} FROM unified_processing_queue
                    WHERE status = 'pending'
                      AND message_media_data->'media'->>'file_id' IS NOT NULL
                    ORDER BY priority DESC, created_at ASC
                    LIMIT $1""",
                limit,
            )
        )
        items = []
        for row in rows:
            try:
                items.append(QueueItem(**dict(row)))
            except (PydanticValidationError, ValueError) as e:
                # An unreadable payload would otherwise sit at the head of the queue forever
                logger.error("[QUEUE] Unreadable queue item %s: %s", row["id"], e)
                await self._db.execute(
                    """UPDATE unified_processing_queue
                       SET status = 'error', error_message = $2, updated_at = now()
                       WHERE id = $1::uuid AND status = 'pending'""",
                    str(row["id"]), f"Invalid payload: {e}"[:2000],
                )
        return items

    async def claim(self, item_id: str) -> bool:
        """Atomically move an item pending -> processing. True only for the winner."""
        status = await self._db.execute(
            """UPDATE unified_processing_queue
               SET status = 'processing', updated_at = now()
               WHERE id = $1::uuid AND status = 'pending'""",
            item_id,
        )
        return affected_rows(status) == 1

    async def _mark_completed(self, item: QueueItem) -> None:
        await self._retry.run(
            lambda: self._db.execute(
                """UPDATE unified_processing_queue
                   SET status = 'completed', processed_at = $2, error_message = NULL, updated_at = now()
                   WHERE id = $1::uuid""",
                item.id, datetime.now(timezone.utc),
            )
        )

    async def _mark_error(self, item: QueueItem, error: str) -> None:
        await self._retry.run(
            lambda: self._db.execute(
                """UPDATE unified_processing_queue
                   SET status = 'error', error_message = $2, retry_count = $3, updated_at = now()
                   WHERE id = $1::uuid""",
                item.id, (error or "Unknown error")[:2000], item.retry_count + 1,
            )
        )

    async def _report_status(self, item: QueueItem, status: MessageStatus, error: Optional[str] = None) -> None:
        # Advisory only: a lost status write never fails the item
        if self._status is None or not item.correlation_id:
            return
        try:
            await self._status.update_status_by_correlation(item.correlation_id, status.value, error)
        except Exception as e:
            logger.warning("[QUEUE] Status %s for item %s not recorded: %s", status.value, item.id, e)

    async def _sync_group(self, media_group_id: str) -> None:
        try:
            await self._caption_sync.sync_media_group_captions(media_group_id)
        except Exception as e:
            logger.warning("[QUEUE] Caption sync for group %s failed: %s", media_group_id, e)

    async def drain(self, items: Iterable[QueueItem]) -> DrainResult:
        """Process items one at a time; a failing item never stops the batch."""
        result = DrainResult()
        for item in items:
            if not item.has_media:
                logger.debug("[QUEUE] Item %s has no media, skipping", item.id)
                result.skipped += 1
                metrics.queue_items_total.inc(("skipped",))
                continue

            if not await self.claim(item.id):
                logger.info("[QUEUE] Item %s already claimed, skipping", item.id)
                result.skipped += 1
                metrics.queue_items_total.inc(("skipped",))
                continue

            await self._report_status(item, MessageStatus.PROCESSING)
            try:
                outcome = await self._processor.process_media_item(item.message_media_data)
                if not outcome.success:
                    raise RuntimeError(outcome.error or "Media processing failed")
                await self._mark_completed(item)
            except Exception as e:
                logger.error("[QUEUE] Item %s failed: %s", item.id, e)
                result.failed += 1
                metrics.queue_items_total.inc(("failed",))
                try:
                    await self._mark_error(item, str(e))
                except Exception as mark_err:
                    logger.error("[QUEUE] Could not record failure for %s: %s", item.id, mark_err)
                await self._report_status(item, MessageStatus.ERROR, str(e))
                continue

            result.processed += 1
            metrics.queue_items_total.inc(("processed",))
            await self._report_status(item, MessageStatus.PROCESSED)
            media_group_id = item.message_media_data.message.media_group_id
            if media_group_id:
                await self._sync_group(media_group_id)

        logger.info(
            "[QUEUE] Drain finished: processed=%d failed=%d skipped=%d",
            result.processed, result.failed, result.skipped,
        )
        return result

    async def process_pending(self, limit: int = 10) -> DrainResult:
        items = await self.fetch_pending(limit)
        metrics.queue_last_batch_size.set(len(items))
        return await self.drain(items)

    async def requeue_failed(self, max_retries: int = 3) -> int:
        """Return errored items under the retry cap to pending. Returns the count."""
        status = await self._retry.run(
            lambda: self._db.execute(
                """UPDATE unified_processing_queue
                   SET status = 'pending', updated_at = now()
                   WHERE status = 'error' AND retry_count < $1""",
                max_retries,
            )
        )
        count = affected_rows(status)
        if count:
            logger.info("[QUEUE] Requeued %d failed items", count)
        return count
