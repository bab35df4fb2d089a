"""
Glide sync routes. Each call runs one job to completion and returns its summary.
"""
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from mediahub.errors import MediaHubError, to_http_exception
from mediahub.models import (
    MediaGroupSyncResponse,
    MissingRowsResponse,
    RecordSyncRequest,
    RecordSyncResponse,
)
from mediahub.services import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/glide", tags=["Glide"])


@router.post("/sync-missing-rows", response_model=MissingRowsResponse)
async def sync_missing_rows(services: Services = Depends(get_services)):
    """Diff telegram_media against Glide and queue the differences."""
    try:
        return await services.glide_sync.find_missing_rows()
    except MediaHubError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error("[GLIDE] sync-missing-rows error: %s", e)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/sync-media-groups", response_model=MediaGroupSyncResponse)
async def sync_media_groups(services: Services = Depends(get_services)):
    try:
        return await services.glide_sync.sync_media_groups()
    except MediaHubError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error("[GLIDE] sync-media-groups error: %s", e)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/configs/{config_id}/sync", response_model=RecordSyncResponse)
async def sync_config_records(
    config_id: uuid.UUID,
    request: Optional[RecordSyncRequest] = None,
    services: Services = Depends(get_services),
):
    """Push telegram_media rows (all, or the given ids) into the config's Glide table."""
    try:
        record_ids = [str(r) for r in request.record_ids] if request and request.record_ids else None
        return await services.glide_sync.sync_records(str(config_id), record_ids)
    except MediaHubError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error("[GLIDE] sync for config %s error: %s", config_id, e)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.delete("/rows/{row_id}")
async def delete_glide_row(row_id: str, services: Services = Depends(get_services)):
    try:
        await services.glide_sync.delete_row(row_id)
    except MediaHubError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error("[GLIDE] delete row %s error: %s", row_id, e)
        raise HTTPException(status_code=500, detail="Internal server error")
    return {"success": True, "row_id": row_id}
