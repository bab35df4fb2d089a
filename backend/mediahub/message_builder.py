"""
Builds the message_media_data payload from a raw Telegram message.

This is the one place the webhook payload is shaped and validated; every
later stage reads the typed MessageMediaData record.
"""
from datetime import datetime, timezone
from typing import Any, Optional

from mediahub.models import (
    AnalysisInfo,
    FileType,
    MediaInfo,
    MessageInfo,
    MessageMediaData,
    MetaInfo,
    SenderInfo,
)


def extract_media_info(message: dict) -> Optional[MediaInfo]:
    """Pick the attachment descriptor; photos use the largest size."""
    photos = message.get("photo")
    if photos:
        largest = photos[-1]
        return MediaInfo(
            file_id=largest.get("file_id"),
            file_unique_id=largest.get("file_unique_id"),
            file_type=FileType.PHOTO.value,
            mime_type="image/jpeg",
            width=largest.get("width"),
            height=largest.get("height"),
            file_size=largest.get("file_size"),
        )

    for file_type in (FileType.VIDEO, FileType.DOCUMENT, FileType.ANIMATION):
        attachment = message.get(file_type.value)
        if attachment:
            return MediaInfo(
                file_id=attachment.get("file_id"),
                file_unique_id=attachment.get("file_unique_id"),
                file_type=file_type.value,
                mime_type=attachment.get("mime_type"),
                width=attachment.get("width"),
                height=attachment.get("height"),
                duration=attachment.get("duration"),
                file_size=attachment.get("file_size"),
            )
    return None


def build_message_url(chat: dict, message_id: int) -> str:
    """Public t.me link; private channels use the /c/<internal id>/ form."""
    username = chat.get("username")
    if username:
        return f"https://t.me/{username}/{message_id}"
    chat_id = str(chat.get("id", ""))
    if chat_id.startswith("-100"):
        chat_id = chat_id[4:]
    else:
        chat_id = chat_id.lstrip("-")
    return f"https://t.me/c/{chat_id}/{message_id}"


def build_message_media_data(
    message: dict,
    correlation_id: str,
    analyzed_content: Optional[dict] = None,
    is_original_caption: bool = False,
    original_message_id: Optional[str] = None,
    inherited_caption: Optional[str] = None,
) -> MessageMediaData:
    """Assemble the tagged payload (message/sender/analysis/meta/media/telegram_data).

    ``inherited_caption`` fills in for album members Telegram sent without one.
    """
    now = datetime.now(timezone.utc).isoformat()
    chat: dict[str, Any] = message.get("chat") or {}
    extracted = analyzed_content or {}

    return MessageMediaData(
        message=MessageInfo(
            message_id=message["message_id"],
            chat_id=chat["id"],
            date=message.get("date", 0),
            url=build_message_url(chat, message["message_id"]),
            media_group_id=message.get("media_group_id"),
            caption=message.get("caption") or inherited_caption,
        ),
        sender=SenderInfo(
            sender_info=message.get("from") or message.get("sender_chat") or {},
            chat_info=chat,
        ),
        analysis=AnalysisInfo(
            analyzed_content=analyzed_content,
            product_name=extracted.get("product_name"),
            product_code=extracted.get("product_code"),
            quantity=extracted.get("quantity"),
            vendor_uid=extracted.get("vendor_uid"),
            purchase_date=extracted.get("purchase_date"),
            notes=extracted.get("notes"),
        ),
        meta=MetaInfo(
            created_at=now,
            updated_at=now,
            is_original_caption=is_original_caption,
            original_message_id=original_message_id,
            correlation_id=correlation_id,
        ),
        media=extract_media_info(message),
        telegram_data=message,
    )
