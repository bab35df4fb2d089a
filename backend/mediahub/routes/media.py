"""
Message and media routes used by the dashboard.

  POST   /messages/{id}/status       status update (messages + telegram_media)
  POST   /media-groups/{id}/sync     caption sync for one media group
  DELETE /media/{id}                 delete, optionally from Telegram/Glide too
  PATCH  /media/{id}/caption         edit caption (re-analysed, pushed to Telegram)
"""
import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query

from mediahub.errors import MediaHubError, to_http_exception
from mediahub.models import (
    CaptionUpdateRequest,
    CaptionUpdateResult,
    DeleteResult,
    StatusUpdateRequest,
)
from mediahub.services import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Media"])


@router.post("/messages/{message_id}/status")
async def update_message_status(
    message_id: uuid.UUID,
    request: StatusUpdateRequest,
    services: Services = Depends(get_services),
):
    try:
        return await services.status_updater.update_status(str(message_id), request.status, request.error)
    except MediaHubError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error("Status update error for %s: %s", message_id, e)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/media-groups/{media_group_id}/sync")
async def sync_media_group(
    media_group_id: str,
    services: Services = Depends(get_services),
):
    """Propagate the group's caption and product fields to every member."""
    try:
        synced = await services.caption_sync.sync_media_group_captions(media_group_id)
    except Exception as e:
        logger.error("Media group sync error for %s: %s", media_group_id, e)
        raise HTTPException(status_code=500, detail="Internal server error")
    if synced is None:
        return {"success": True, "synced": False, "media_group_id": media_group_id}
    return {"success": True, "synced": True, **synced}


@router.delete("/media/{media_id}", response_model=DeleteResult)
async def delete_media(
    media_id: uuid.UUID,
    delete_from_telegram: bool = Query(False),
    delete_from_glide: bool = Query(False),
    services: Services = Depends(get_services),
):
    try:
        return await services.media_actions.delete_media(
            str(media_id),
            delete_from_telegram=delete_from_telegram,
            delete_from_glide=delete_from_glide,
        )
    except MediaHubError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error("Delete media error for %s: %s", media_id, e)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.patch("/media/{media_id}/caption", response_model=CaptionUpdateResult)
async def update_media_caption(
    media_id: uuid.UUID,
    request: CaptionUpdateRequest,
    services: Services = Depends(get_services),
):
    try:
        return await services.media_actions.update_caption(str(media_id), request.caption)
    except MediaHubError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error("Caption update error for %s: %s", media_id, e)
        raise HTTPException(status_code=500, detail="Internal server error")
