"""
Unit tests for mediahub.message_builder.
"""
from mediahub.message_builder import (
    build_message_media_data,
    build_message_url,
    extract_media_info,
)


class TestExtractMediaInfo:
    def test_largest_photo_chosen(self, photo_message):
        media = extract_media_info(photo_message)
        assert media.file_id == "big-id"
        assert media.file_unique_id == "AQAD-big_uid"
        assert media.file_type == "photo"
        assert media.width == 1280

    def test_video(self):
        message = {"video": {"file_id": "v", "file_unique_id": "vu", "mime_type": "video/mp4", "duration": 12}}
        media = extract_media_info(message)
        assert media.file_type == "video"
        assert media.duration == 12
        assert media.mime_type == "video/mp4"

    def test_document(self):
        message = {"document": {"file_id": "d", "file_unique_id": "du", "mime_type": "application/pdf"}}
        assert extract_media_info(message).file_type == "document"

    def test_text_message_has_no_media(self):
        assert extract_media_info({"text": "hello"}) is None


class TestMessageUrl:
    def test_private_channel_prefix_stripped(self):
        assert build_message_url({"id": -1001234567890}, 42) == "https://t.me/c/1234567890/42"

    def test_public_username(self):
        assert build_message_url({"id": -100987, "username": "stockroom"}, 7) == "https://t.me/stockroom/7"


class TestBuildMessageMediaData:
    def test_blocks_populated(self, photo_message):
        analyzed = {"product_name": "Blue Widget", "quantity": 3, "purchase_date": "2024-12-31"}
        data = build_message_media_data(photo_message, "corr-9", analyzed_content=analyzed, is_original_caption=True)

        assert data.message.message_id == 42
        assert data.message.chat_id == -1001234567890
        assert data.message.caption.startswith("Blue Widget")
        assert data.message.url == "https://t.me/c/1234567890/42"
        assert data.analysis.product_name == "Blue Widget"
        assert data.analysis.quantity == 3
        assert data.analysis.analyzed_content == analyzed
        assert data.meta.correlation_id == "corr-9"
        assert data.meta.is_original_caption is True
        assert data.meta.status == "pending"
        assert data.media.file_id == "big-id"
        assert data.telegram_data == photo_message
        assert data.sender.chat_info["title"] == "Stock"

    def test_group_member_without_analysis(self, photo_message):
        message = dict(photo_message, caption=None, media_group_id="g-1")
        data = build_message_media_data(message, "corr-1", original_message_id="orig-1")

        assert data.message.media_group_id == "g-1"
        assert data.analysis.analyzed_content is None
        assert data.analysis.product_name is None
        assert data.meta.original_message_id == "orig-1"

    def test_inherited_caption_only_fills_gap(self, photo_message):
        member = dict(photo_message, caption=None, media_group_id="g-1")
        assert build_message_media_data(member, "c", inherited_caption="Album caption").message.caption == "Album caption"
        own = build_message_media_data(photo_message, "c", inherited_caption="Album caption")
        assert own.message.caption == photo_message["caption"]
