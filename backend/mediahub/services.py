"""
Service container.

Everything is wired once in the app lifespan and stored on app.state;
routes reach it through the get_services dependency, which tests override.
"""
import logging

import httpx
from fastapi import Request
from supabase import Client

from mediahub.caption_analyzer import CaptionAnalyzer
from mediahub.caption_sync import CaptionSync
from mediahub.config import Settings
from mediahub.database import Database
from mediahub.glide_sync import GlideSyncService
from mediahub.ingest import WebhookIngestor
from mediahub.media_actions import MediaActions
from mediahub.media_processor import MediaProcessor
from mediahub.queue_manager import QueueManager
from mediahub.retry import RetryPolicy
from mediahub.status import StatusUpdater
from mediahub.storage import StorageUploader
from mediahub.telegram_api import TelegramBotAPI

logger = logging.getLogger(__name__)


class Services:
    def __init__(
        self,
        settings: Settings,
        db: Database,
        telegram: TelegramBotAPI,
        analyzer: CaptionAnalyzer,
        queue: QueueManager,
        ingestor: WebhookIngestor,
        caption_sync: CaptionSync,
        status_updater: StatusUpdater,
        glide_sync: GlideSyncService,
        media_actions: MediaActions,
    ) -> None:
        self.settings = settings
        self.db = db
        self.telegram = telegram
        self.analyzer = analyzer
        self.queue = queue
        self.ingestor = ingestor
        self.caption_sync = caption_sync
        self.status_updater = status_updater
        self.glide_sync = glide_sync
        self.media_actions = media_actions


def build_services(
    settings: Settings,
    db: Database,
    storage_client: Client,
    http_client: httpx.AsyncClient,
) -> Services:
    retry_policy = RetryPolicy(
        max_retries=settings.RETRY_MAX_ATTEMPTS,
        initial_delay=settings.RETRY_INITIAL_DELAY,
        max_delay=settings.RETRY_MAX_DELAY,
    )
    telegram = TelegramBotAPI(
        settings.TELEGRAM_BOT_TOKEN,
        base_url=settings.TELEGRAM_API_BASE,
        client=http_client,
    )
    analyzer = CaptionAnalyzer(
        api_key=settings.OPENAI_API_KEY,
        model=settings.OPENAI_MODEL,
        base_url=settings.OPENAI_API_BASE,
        client=http_client,
    )
    storage = StorageUploader(storage_client, bucket=settings.STORAGE_BUCKET)
    caption_sync = CaptionSync(db, retry_policy)
    processor = MediaProcessor(db, telegram, storage, retry_policy)
    status_updater = StatusUpdater(db, retry_policy)
    queue = QueueManager(db, processor, caption_sync, retry_policy, status_updater)
    glide_sync = GlideSyncService(
        db,
        caption_sync,
        api_token=settings.GLIDE_API_TOKEN,
        base_url=settings.GLIDE_API_BASE,
        client=http_client,
        retry_policy=retry_policy,
    )
    logger.info("Services wired (bucket=%s, llm=%s)", settings.STORAGE_BUCKET, bool(settings.OPENAI_API_KEY))
    return Services(
        settings=settings,
        db=db,
        telegram=telegram,
        analyzer=analyzer,
        queue=queue,
        ingestor=WebhookIngestor(db, analyzer, queue, retry_policy),
        caption_sync=caption_sync,
        status_updater=status_updater,
        glide_sync=glide_sync,
        media_actions=MediaActions(db, telegram, glide_sync, analyzer, caption_sync),
    )


def get_services(request: Request) -> Services:
    """FastAPI dependency returning the container built at startup."""
    return request.app.state.services
