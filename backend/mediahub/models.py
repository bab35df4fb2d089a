"""
Pydantic models for pipeline payloads and request/response validation
"""
import json
from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict, List, Optional
from datetime import datetime
from enum import Enum
from uuid import UUID


# ============================================================
# Enums
# ============================================================

class FileType(str, Enum):
    PHOTO = "photo"
    VIDEO = "video"
    DOCUMENT = "document"
    ANIMATION = "animation"


class MessageStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PROCESSED = "processed"
    ERROR = "error"


class QueueType(str, Enum):
    MEDIA = "media"
    WEBHOOK = "webhook"
    MEDIA_GROUP = "media_group"


class QueueStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


# ============================================================
# message_media_data: the payload snapshot carried everywhere
# ============================================================

class MessageInfo(BaseModel):
    message_id: int
    chat_id: int
    date: int
    url: Optional[str] = None
    media_group_id: Optional[str] = None
    caption: Optional[str] = None


class SenderInfo(BaseModel):
    sender_info: Dict[str, Any] = Field(default_factory=dict)
    chat_info: Dict[str, Any] = Field(default_factory=dict)


class AnalysisInfo(BaseModel):
    analyzed_content: Optional[Dict[str, Any]] = None
    product_name: Optional[str] = None
    product_code: Optional[str] = None
    quantity: Optional[int] = None
    vendor_uid: Optional[str] = None
    purchase_date: Optional[str] = None  # YYYY-MM-DD
    notes: Optional[str] = None


class MetaInfo(BaseModel):
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    status: str = MessageStatus.PENDING.value
    error: Optional[str] = None
    is_original_caption: bool = False
    original_message_id: Optional[str] = None
    correlation_id: Optional[str] = None
    processed_at: Optional[str] = None
    last_retry_at: Optional[str] = None
    retry_count: int = 0


class MediaInfo(BaseModel):
    # All optional: required-field checks happen in the media processor so a
    # bad payload yields a failed result instead of a parse error.
    file_id: Optional[str] = None
    file_unique_id: Optional[str] = None
    file_type: Optional[str] = None
    public_url: Optional[str] = None
    storage_path: Optional[str] = None
    mime_type: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    duration: Optional[int] = None
    file_size: Optional[int] = None


class MessageMediaData(BaseModel):
    message: MessageInfo
    sender: SenderInfo = Field(default_factory=SenderInfo)
    analysis: AnalysisInfo = Field(default_factory=AnalysisInfo)
    meta: MetaInfo = Field(default_factory=MetaInfo)
    media: Optional[MediaInfo] = None
    telegram_data: Dict[str, Any] = Field(default_factory=dict)


def _decode_json(value: Any) -> Any:
    if isinstance(value, (str, bytes)):
        return json.loads(value)
    return value


# ============================================================
# Queue
# ============================================================

class QueueItem(BaseModel):
    id: str
    queue_type: QueueType
    message_media_data: MessageMediaData
    status: QueueStatus = QueueStatus.PENDING
    correlation_id: str
    chat_id: Optional[int] = None
    message_id: Optional[int] = None
    priority: int = 1
    retry_count: int = 0
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_to_str(cls, v: Any) -> str:
        return str(v)

    @field_validator("message_media_data", mode="before")
    @classmethod
    def _parse_payload(cls, v: Any) -> Any:
        return _decode_json(v)

    @property
    def has_media(self) -> bool:
        media = self.message_media_data.media
        return bool(media and media.file_id)


class DrainResult(BaseModel):
    processed: int = 0
    failed: int = 0
    skipped: int = 0


# ============================================================
# Media processing
# ============================================================

class ProcessingResult(BaseModel):
    success: bool
    media_id: Optional[str] = None
    error: Optional[str] = None


class UploadResult(BaseModel):
    public_url: str
    storage_path: str
    is_existing: bool = False


class DeleteResult(BaseModel):
    deleted: bool
    warning: Optional[str] = None


class CaptionUpdateResult(BaseModel):
    media_id: str
    caption: Optional[str] = None
    warning: Optional[str] = None


# ============================================================
# Glide
# ============================================================

class GlideConfig(BaseModel):
    id: str
    app_id: str
    table_id: str
    api_token: Optional[str] = None
    supabase_table_name: Optional[str] = None
    active: bool = False

    @field_validator("id", mode="before")
    @classmethod
    def _id_to_str(cls, v: Any) -> str:
        return str(v)


class GlideDifference(BaseModel):
    record_id: str
    difference_type: str  # missing_in_glide | field_mismatch
    supabase_data: Dict[str, Any] = Field(default_factory=dict)
    glide_data: Optional[Dict[str, Any]] = None


class MissingRowsResponse(BaseModel):
    success: bool = True
    differences_found: int
    batch_id: Optional[str] = None


class MediaGroupSyncResponse(BaseModel):
    success: bool = True
    updated_groups: int
    synced_media: int
    glide_updates: int = 0


class RecordSyncResponse(BaseModel):
    success: bool = True
    added: int = 0
    updated: int = 0
    errors: List[str] = Field(default_factory=list)


# ============================================================
# Request bodies
# ============================================================

class TelegramUpdate(BaseModel):
    update_id: int
    message: Optional[Dict[str, Any]] = None
    channel_post: Optional[Dict[str, Any]] = None

    @property
    def effective_message(self) -> Optional[Dict[str, Any]]:
        return self.message or self.channel_post


class StatusUpdateRequest(BaseModel):
    status: str = Field(..., max_length=32)
    error: Optional[str] = Field(None, max_length=2000)


class CaptionUpdateRequest(BaseModel):
    caption: Optional[str] = Field(None, max_length=1024)  # Telegram caption limit


class RecordSyncRequest(BaseModel):
    record_ids: Optional[List[UUID]] = None
