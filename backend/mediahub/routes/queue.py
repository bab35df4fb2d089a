"""
Queue routes: drain pending items and requeue failed ones.

Both are meant to be hit by a scheduler; each call is one bounded batch.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from mediahub.errors import MediaHubError, to_http_exception
from mediahub.models import DrainResult
from mediahub.services import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/queue", tags=["Queue"])


@router.post("/process", response_model=DrainResult)
async def process_queue(
    limit: Optional[int] = Query(None, ge=1, le=100),
    services: Services = Depends(get_services),
):
    """Fetch up to `limit` pending items and process them."""
    try:
        return await services.queue.process_pending(limit or services.settings.QUEUE_BATCH_SIZE)
    except MediaHubError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error("[QUEUE] Drain failed: %s", e)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/requeue-failed")
async def requeue_failed(services: Services = Depends(get_services)):
    """Put errored items below the retry cap back to pending."""
    try:
        count = await services.queue.requeue_failed(services.settings.QUEUE_MAX_RETRIES)
    except Exception as e:
        logger.error("[QUEUE] Requeue failed: %s", e)
        raise HTTPException(status_code=500, detail="Internal server error")
    return {"success": True, "requeued": count}
