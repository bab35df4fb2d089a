"""
Processing status updates for a message and its media rows.

The status lives in two places: the messages row and every telegram_media
row sharing its correlation_id. The two writes are not transactional; when
the second fails a PartialFailureError reports it and the first stays.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from mediahub.database import Database, affected_rows, from_jsonb, to_jsonb
from mediahub.errors import PartialFailureError, RecordNotFoundError
from mediahub.retry import RetryPolicy

logger = logging.getLogger(__name__)

PROCESSED = "processed"


class StatusUpdater:
    def __init__(self, db: Database, retry_policy: Optional[RetryPolicy] = None) -> None:
        self._db = db
        self._retry = retry_policy or RetryPolicy()

    async def update_status(self, message_id: str, status: str, error: Optional[str] = None) -> dict:
        row = await self._retry.run(
            lambda: self._db.fetchrow(
                "SELECT message_media_data, correlation_id FROM messages WHERE id = $1::uuid",
                message_id,
            )
        )
        if row is None:
            raise RecordNotFoundError(f"Message {message_id} not found")
        return await self._write(message_id, row, status, error)

    async def update_status_by_correlation(
        self, correlation_id: str, status: str, error: Optional[str] = None
    ) -> dict:
        """Same as update_status, for the message a queue item was built from."""
        row = await self._retry.run(
            lambda: self._db.fetchrow(
                """SELECT id, message_media_data, correlation_id FROM messages
                   WHERE correlation_id = $1 LIMIT 1""",
                correlation_id,
            )
        )
        if row is None:
            raise RecordNotFoundError(f"No message for correlation {correlation_id}")
        return await self._write(str(row["id"]), row, status, error)

    async def _write(self, message_id: str, row, status: str, error: Optional[str]) -> dict:
        now = datetime.now(timezone.utc)
        processed_at = now if status == PROCESSED else None

        payload = from_jsonb(row["message_media_data"]) or {}
        meta = payload.setdefault("meta", {})
        meta.update({
            "status": status,
            "error": error,
            "processed_at": processed_at.isoformat() if processed_at else None,
            "updated_at": now.isoformat(),
        })
        payload_json = to_jsonb(payload)

        await self._retry.run(
            lambda: self._db.execute(
                """UPDATE messages
                   SET message_media_data = $2::jsonb, status = $3, processing_error = $4,
                       processed_at = $5, updated_at = now()
                   WHERE id = $1::uuid""",
                message_id, payload_json, status, error, processed_at,
            )
        )

        media_updated = 0
        correlation_id = row["correlation_id"]
        if correlation_id:
            try:
                media_status = await self._retry.run(
                    lambda: self._db.execute(
                        """UPDATE telegram_media
                           SET message_media_data = $2::jsonb, processed = $3, processing_error = $4,
                               processed_at = $5, updated_at = now()
                           WHERE correlation_id = $1""",
                        correlation_id, payload_json, status == PROCESSED, error, processed_at,
                    )
                )
            except Exception as e:
                logger.error(
                    "[STATUS] messages %s updated but telegram_media (correlation %s) failed: %s",
                    message_id, correlation_id, e,
                )
                raise PartialFailureError(
                    f"Status written to messages but not to telegram_media: {e}",
                    completed="messages",
                    failed="telegram_media",
                ) from e
            media_updated = affected_rows(media_status)

        logger.info("[STATUS] Message %s -> %s (%d media rows)", message_id, status, media_updated)
        return {
            "message_id": message_id,
            "status": status,
            "processed_at": processed_at.isoformat() if processed_at else None,
            "media_updated": media_updated,
        }
