"""
Supabase Storage uploader.

File names are deterministic (file_unique_id + type extension), so a second
upload of the same Telegram file finds the existing object and reuses its
public URL. Errors are not caught or retried here.
"""
import asyncio
import logging
import re
from typing import Optional

from supabase import Client

from mediahub.metrics import metrics
from mediahub.models import UploadResult

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9]")

_EXTENSIONS = {
    "photo": "jpg",
    "video": "mp4",
    "document": "pdf",
}

_CONTENT_TYPES = {
    "photo": "image/jpeg",
    "video": "video/mp4",
    "document": "application/pdf",
}


def generate_file_name(file_unique_id: str, file_type: str) -> str:
    safe_id = _UNSAFE_CHARS.sub("", file_unique_id)
    return f"{safe_id}.{_EXTENSIONS.get(file_type, 'bin')}"


def content_type_for(file_type: str, mime_type: Optional[str] = None) -> str:
    return mime_type or _CONTENT_TYPES.get(file_type, "application/octet-stream")


class StorageUploader:
    def __init__(self, client: Client, bucket: str = "media") -> None:
        self._client = client
        self._bucket = bucket

    def _bucket_api(self):
        return self._client.storage.from_(self._bucket)

    async def find_existing(self, file_name: str) -> bool:
        entries = await asyncio.to_thread(
            lambda: self._bucket_api().list("", {"search": file_name})
        )
        # search is a prefix match; require the exact name
        return any(entry.get("name") == file_name for entry in entries or [])

    def public_url(self, file_name: str) -> str:
        return self._bucket_api().get_public_url(file_name)

    async def upload(
        self,
        buffer: bytes,
        file_unique_id: str,
        file_type: str,
        mime_type: Optional[str] = None,
    ) -> UploadResult:
        file_name = generate_file_name(file_unique_id, file_type)

        if await self.find_existing(file_name):
            logger.info("[STORAGE] Reusing existing object %s", file_name)
            metrics.storage_uploads_total.inc(("reused",))
            return UploadResult(
                public_url=self.public_url(file_name),
                storage_path=file_name,
                is_existing=True,
            )

        content_type = content_type_for(file_type, mime_type)
        await asyncio.to_thread(
            lambda: self._bucket_api().upload(
                file_name,
                buffer,
                {"content-type": content_type, "cache-control": "3600", "upsert": "true"},
            )
        )
        metrics.storage_uploads_total.inc(("uploaded",))
        logger.info("[STORAGE] Uploaded %s (%d bytes, %s)", file_name, len(buffer), content_type)
        return UploadResult(
            public_url=self.public_url(file_name),
            storage_path=file_name,
            is_existing=False,
        )
