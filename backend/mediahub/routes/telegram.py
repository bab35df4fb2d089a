"""
Telegram routes: the Bot API webhook and webhook registration.

Telegram redelivers any update that isn't answered with 2xx, so once the
secret token checks out every outcome is a 200; failures are logged and
sent to Sentry instead.
"""
import logging
from typing import Optional

import sentry_sdk
from fastapi import APIRouter, Depends, Header, HTTPException, Request

from mediahub.errors import TelegramAPIError
from mediahub.metrics import metrics
from mediahub.models import TelegramUpdate
from mediahub.services import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/telegram", tags=["Telegram"])


@router.post("/webhook")
async def telegram_webhook(
    request: Request,
    x_telegram_bot_api_secret_token: Optional[str] = Header(None),
    services: Services = Depends(get_services),
):
    """Receive an update: store the message and queue its media."""
    if not services.settings.verify_webhook_secret(x_telegram_bot_api_secret_token):
        logger.warning("[WEBHOOK] Rejected update with invalid secret token")
        raise HTTPException(status_code=403, detail="Invalid secret token")

    metrics.webhook_updates_total.inc()
    try:
        update = TelegramUpdate.model_validate(await request.json())
    except ValueError as e:
        logger.warning("[WEBHOOK] Unparseable update: %s", e)
        return {"ok": True, "skipped": "invalid update"}

    message = update.effective_message
    if not message:
        logger.debug("[WEBHOOK] Update %s has no message, skipping", update.update_id)
        return {"ok": True, "skipped": "no message"}

    try:
        return await services.ingestor.handle_message(message)
    except Exception as e:
        logger.error("[WEBHOOK] Failed to handle update %s: %s", update.update_id, e, exc_info=True)
        sentry_sdk.capture_exception(e)
        return {"ok": False, "error": "processing failed"}


@router.post("/set-webhook")
async def set_webhook(services: Services = Depends(get_services)):
    """Register this service's webhook URL and secret with Telegram."""
    url = services.settings.webhook_url
    if not url:
        raise HTTPException(status_code=400, detail="PUBLIC_BASE_URL is not configured")
    try:
        await services.telegram.set_webhook(url, services.settings.TELEGRAM_WEBHOOK_SECRET)
    except TelegramAPIError as e:
        logger.error("[WEBHOOK] setWebhook failed: %s", e)
        raise HTTPException(status_code=502, detail=str(e))
    return {"ok": True, "url": url}
