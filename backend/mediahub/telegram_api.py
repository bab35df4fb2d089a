"""
Async HTTP client for the Telegram Bot API.

Only the handful of methods the pipeline needs: file download, message
deletion, caption edits and webhook registration. Non-ok responses raise
TelegramAPIError; retrying is the caller's business.
"""
import logging
from typing import Any, Optional

import httpx

from mediahub.errors import TelegramAPIError

logger = logging.getLogger(__name__)


class TelegramBotAPI:
    def __init__(
        self,
        bot_token: str,
        base_url: str = "https://api.telegram.org",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._token = bot_token
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def _method_url(self, method: str) -> str:
        return f"{self._base_url}/bot{self._token}/{method}"

    async def _call(self, method: str, payload: dict) -> Any:
        try:
            resp = await self._client.post(self._method_url(method), json=payload)
        except httpx.HTTPError as e:
            raise TelegramAPIError(f"{method} request failed: {e}") from e
        try:
            data = resp.json()
        except ValueError:
            raise TelegramAPIError(f"{method} returned non-JSON response (HTTP {resp.status_code})")
        if not data.get("ok"):
            raise TelegramAPIError(f"{method} failed: {data.get('description') or resp.status_code}")
        return data.get("result")

    async def get_file_path(self, file_id: str) -> str:
        """Resolve a file_id to its download path on the Bot API file server."""
        result = await self._call("getFile", {"file_id": file_id})
        file_path = (result or {}).get("file_path")
        if not file_path:
            raise TelegramAPIError("Failed to get file path from Telegram")
        return file_path

    async def download_file(self, file_id: str) -> bytes:
        """Download raw bytes for a file_id (file_ids are ephemeral but re-downloadable)."""
        file_path = await self.get_file_path(file_id)
        url = f"{self._base_url}/file/bot{self._token}/{file_path}"
        try:
            resp = await self._client.get(url)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise TelegramAPIError(f"Failed to download file: {e}") from e
        logger.debug("Downloaded %s (%d bytes)", file_path, len(resp.content))
        return resp.content

    async def delete_message(self, chat_id: int, message_id: int) -> None:
        await self._call("deleteMessage", {"chat_id": chat_id, "message_id": message_id})
        logger.info("Deleted Telegram message %s in chat %s", message_id, chat_id)

    async def edit_message_caption(self, chat_id: int, message_id: int, caption: Optional[str]) -> None:
        await self._call(
            "editMessageCaption",
            {"chat_id": chat_id, "message_id": message_id, "caption": caption or ""},
        )

    async def set_webhook(self, url: str, secret_token: str) -> None:
        await self._call(
            "setWebhook",
            {
                "url": url,
                "secret_token": secret_token,
                "allowed_updates": ["message", "channel_post"],
            },
        )
        logger.info("Webhook registered at %s", url)

    async def close(self) -> None:
        if not self._client.is_closed:
            await self._client.aclose()
