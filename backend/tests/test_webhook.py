"""
Tests for webhook ingestion (mediahub.ingest) and the HTTP routes.
"""
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from mediahub.caption_analyzer import CaptionAnalyzer
from mediahub.caption_sync import CaptionSync
from mediahub.config import settings
from mediahub.errors import PartialFailureError, RecordNotFoundError, ValidationError
from mediahub.ingest import WebhookIngestor
from mediahub.models import DeleteResult, DrainResult, MissingRowsResponse, RecordSyncResponse
from mediahub.routes import glide, media, queue, telegram
from mediahub.services import get_services

MEDIA_ID = "5b0e3c6a-8f1d-4c2e-9a7b-1d2e3f4a5b6c"
SECRET_HEADER = {"X-Telegram-Bot-Api-Secret-Token": settings.TELEGRAM_WEBHOOK_SECRET}


# ------------------------------------------------------------------
# WebhookIngestor
# ------------------------------------------------------------------

@pytest.fixture()
def queue_manager():
    manager = MagicMock()
    manager.enqueue = AsyncMock(return_value=True)
    return manager


@pytest.fixture()
def ingestor(mock_db, queue_manager, no_wait_retry):
    return WebhookIngestor(mock_db, CaptionAnalyzer(api_key=""), queue_manager, no_wait_retry)


class TestWebhookIngestor:
    @pytest.mark.asyncio
    async def test_captioned_photo_stored_and_queued(self, ingestor, mock_db, queue_manager, photo_message):
        mock_db.fetchval.return_value = "msg-uuid"

        result = await ingestor.handle_message(photo_message)

        assert result["ok"] is True and result["queued"] is True
        sql, *args = mock_db.fetchval.await_args.args
        assert "ON CONFLICT (chat_id, message_id) DO NOTHING" in sql
        assert args[0] == -1001234567890 and args[1] == 42
        assert args[5] is True  # is_original_caption
        assert args[8] == "Blue Widget"
        assert json.loads(args[14])["parsing_method"] == "rules"

        payload, correlation_id = queue_manager.enqueue.await_args.args
        assert payload.media.file_id == "big-id"
        assert correlation_id == result["correlation_id"]

    @pytest.mark.asyncio
    async def test_group_member_reuses_holder_analysis(self, ingestor, mock_db, photo_message):
        holder_analysis = {"product_name": "Blue Widget", "quantity": 3}
        mock_db.fetchrow.return_value = {
            "id": "holder-uuid", "caption": "Blue Widget x 3", "analyzed_content": json.dumps(holder_analysis),
        }
        mock_db.fetchval.return_value = "msg-uuid"
        message = dict(photo_message, caption=None, media_group_id="g-1")

        await ingestor.handle_message(message)

        args = mock_db.fetchval.await_args.args[1:]
        assert args[3] == "Blue Widget x 3"
        assert args[5] is False
        assert args[6] == "holder-uuid"
        assert args[8] == "Blue Widget"
        assert args[10] == 3

    @pytest.mark.asyncio
    async def test_album_sync_keeps_holder_caption(self, ingestor, mock_db, photo_message, no_wait_retry):
        holder_message = dict(photo_message, media_group_id="g-1")
        member_message = dict(photo_message, message_id=43, caption=None, media_group_id="g-1")
        mock_db.fetchval.return_value = "msg-uuid"

        await ingestor.handle_message(holder_message)
        holder_args = mock_db.fetchval.await_args.args[1:]
        mock_db.fetchrow.return_value = {
            "id": "holder-uuid", "caption": holder_args[3], "analyzed_content": holder_args[14],
        }
        await ingestor.handle_message(member_message)
        member_args = mock_db.fetchval.await_args.args[1:]

        def stored_row(row_id, args):
            return {
                "id": row_id, "caption": args[3], "product_name": args[8], "product_code": args[9],
                "quantity": args[10], "vendor_uid": args[11], "purchase_date": args[12],
                "notes": args[13], "analyzed_content": args[14],
            }

        mock_db.fetch.return_value = [stored_row("member-uuid", member_args), stored_row("holder-uuid", holder_args)]
        mock_db.execute.reset_mock()
        synced = await CaptionSync(mock_db, no_wait_retry).sync_media_group_captions("g-1")

        assert synced["source_id"] == "member-uuid"
        for call in mock_db.execute.await_args_list:
            assert call.args[1] == "Blue Widget #ABC123124 x 3 (damaged box)"
            assert call.args[2] == "Blue Widget"

    @pytest.mark.asyncio
    async def test_redelivery_not_requeued(self, ingestor, mock_db, queue_manager, photo_message):
        mock_db.fetchval.return_value = None

        result = await ingestor.handle_message(photo_message)

        assert result == {"ok": True, "duplicate": True}
        queue_manager.enqueue.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_text_message_not_queued(self, ingestor, mock_db, queue_manager):
        mock_db.fetchval.return_value = "msg-uuid"
        message = {"message_id": 5, "date": 0, "chat": {"id": -100777}, "text": "hello"}

        result = await ingestor.handle_message(message)

        assert result["queued"] is False
        queue_manager.enqueue.assert_not_awaited()


# ------------------------------------------------------------------
# Routes
# ------------------------------------------------------------------

@pytest.fixture()
def services():
    container = MagicMock()
    container.settings = settings
    container.ingestor.handle_message = AsyncMock(return_value={"ok": True, "queued": True})
    container.queue.process_pending = AsyncMock(return_value=DrainResult(processed=2, failed=1, skipped=0))
    container.queue.requeue_failed = AsyncMock(return_value=3)
    container.status_updater.update_status = AsyncMock(return_value={"message_id": "m-1", "status": "processed"})
    container.caption_sync.sync_media_group_captions = AsyncMock(return_value=None)
    container.glide_sync.find_missing_rows = AsyncMock(return_value=MissingRowsResponse(differences_found=0))
    container.glide_sync.delete_row = AsyncMock()
    container.media_actions.delete_media = AsyncMock()
    return container


@pytest.fixture()
def client(services):
    app = FastAPI()
    for module in (telegram, queue, media, glide):
        app.include_router(module.router, prefix="/api")
    app.dependency_overrides[get_services] = lambda: services
    return TestClient(app)


class TestTelegramRoutes:
    def test_wrong_secret_forbidden(self, client, services):
        resp = client.post("/api/telegram/webhook", json={"update_id": 1},
                           headers={"X-Telegram-Bot-Api-Secret-Token": "wrong"})
        assert resp.status_code == 403
        services.ingestor.handle_message.assert_not_awaited()

    def test_missing_secret_forbidden(self, client):
        assert client.post("/api/telegram/webhook", json={"update_id": 1}).status_code == 403

    def test_update_without_message_skipped(self, client, services):
        resp = client.post("/api/telegram/webhook", json={"update_id": 1}, headers=SECRET_HEADER)
        assert resp.status_code == 200
        assert resp.json()["skipped"] == "no message"
        services.ingestor.handle_message.assert_not_awaited()

    def test_channel_post_handled(self, client, services, photo_message):
        resp = client.post("/api/telegram/webhook",
                           json={"update_id": 9, "channel_post": photo_message}, headers=SECRET_HEADER)
        assert resp.status_code == 200
        services.ingestor.handle_message.assert_awaited_once_with(photo_message)

    def test_processing_error_still_200(self, client, services, photo_message):
        services.ingestor.handle_message.side_effect = RuntimeError("db down")
        resp = client.post("/api/telegram/webhook",
                           json={"update_id": 9, "message": photo_message}, headers=SECRET_HEADER)
        assert resp.status_code == 200
        assert resp.json()["ok"] is False

    def test_malformed_body_still_200(self, client):
        resp = client.post("/api/telegram/webhook", content=b"not json",
                           headers={**SECRET_HEADER, "Content-Type": "application/json"})
        assert resp.status_code == 200
        assert resp.json()["skipped"] == "invalid update"


class TestQueueRoutes:
    def test_process_uses_default_batch(self, client, services):
        resp = client.post("/api/queue/process")
        assert resp.status_code == 200
        assert resp.json() == {"processed": 2, "failed": 1, "skipped": 0}
        services.queue.process_pending.assert_awaited_once_with(settings.QUEUE_BATCH_SIZE)

    def test_process_limit_bounds(self, client):
        assert client.post("/api/queue/process?limit=0").status_code == 422
        assert client.post("/api/queue/process?limit=500").status_code == 422

    def test_requeue_failed(self, client, services):
        resp = client.post("/api/queue/requeue-failed")
        assert resp.json() == {"success": True, "requeued": 3}
        services.queue.requeue_failed.assert_awaited_once_with(settings.QUEUE_MAX_RETRIES)


class TestMediaRoutes:
    def test_status_update(self, client, services):
        resp = client.post(f"/api/messages/{MEDIA_ID}/status", json={"status": "processed"})
        assert resp.status_code == 200
        services.status_updater.update_status.assert_awaited_once_with(MEDIA_ID, "processed", None)

    def test_status_not_found(self, client, services):
        services.status_updater.update_status.side_effect = RecordNotFoundError("Message m-1 not found")
        assert client.post(f"/api/messages/{MEDIA_ID}/status", json={"status": "x"}).status_code == 404

    def test_status_partial_failure(self, client, services):
        services.status_updater.update_status.side_effect = PartialFailureError("half", "messages", "telegram_media")
        assert client.post(f"/api/messages/{MEDIA_ID}/status", json={"status": "x"}).status_code == 502

    def test_group_sync_nothing_to_do(self, client):
        resp = client.post("/api/media-groups/g-1/sync")
        assert resp.json() == {"success": True, "synced": False, "media_group_id": "g-1"}

    def test_delete_flags_passed(self, client, services):
        services.media_actions.delete_media.return_value = DeleteResult(deleted=True, warning="Telegram deletion failed: x")

        resp = client.delete(f"/api/media/{MEDIA_ID}?delete_from_telegram=true")

        assert resp.status_code == 200
        assert resp.json()["warning"].startswith("Telegram")
        services.media_actions.delete_media.assert_awaited_once_with(
            MEDIA_ID, delete_from_telegram=True, delete_from_glide=False,
        )

    def test_non_uuid_ids_rejected(self, client, services):
        assert client.post("/api/messages/m-1/status", json={"status": "processed"}).status_code == 422
        assert client.delete("/api/media/not-a-uuid").status_code == 422
        services.status_updater.update_status.assert_not_awaited()
        services.media_actions.delete_media.assert_not_awaited()


class TestGlideRoutes:
    def test_missing_rows(self, client):
        resp = client.post("/api/glide/sync-missing-rows")
        assert resp.status_code == 200
        assert resp.json()["differences_found"] == 0

    def test_no_config_is_404(self, client, services):
        services.glide_sync.find_missing_rows.side_effect = RecordNotFoundError("No active Glide configuration found")
        assert client.post("/api/glide/sync-missing-rows").status_code == 404

    def test_config_sync_passes_record_ids(self, client, services):
        services.glide_sync.sync_records = AsyncMock(return_value=RecordSyncResponse(added=1))

        resp = client.post(f"/api/glide/configs/{MEDIA_ID}/sync", json={"record_ids": [MEDIA_ID]})

        assert resp.status_code == 200
        services.glide_sync.sync_records.assert_awaited_once_with(MEDIA_ID, [MEDIA_ID])

    def test_config_sync_bad_record_id(self, client):
        resp = client.post(f"/api/glide/configs/{MEDIA_ID}/sync", json={"record_ids": ["nope"]})
        assert resp.status_code == 422

    def test_validation_is_400(self, client, services):
        services.glide_sync.delete_row.side_effect = ValidationError("Glide API token is not configured")
        assert client.delete("/api/glide/rows/r-1").status_code == 400
