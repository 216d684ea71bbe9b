"""Telegram Bot API client (secondary store).

Stores files as messages in a private channel and downloads them back by
``file_id``. The CDN download URL embeds the bot token, so it is built and used
only inside this module: it never appears in return values, exceptions or logs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from kvault.exceptions import StoreConfigurationError, UpstreamError
from kvault.stores.base import DEFAULT_MIME_TYPE, FetchedFile, SecondaryUpload

logger = logging.getLogger(__name__)

STORE_NAME = "telegram"

CAPTION_LIMIT = 1024
MESSAGE_LIMIT = 4096


@dataclass(frozen=True)
class _UploadMethod:
    method: str
    field: str


_DOCUMENT = _UploadMethod("sendDocument", "document")
_UPLOAD_METHODS = (
    ("image/", _UploadMethod("sendPhoto", "photo")),
    ("audio/", _UploadMethod("sendAudio", "audio")),
    ("video/", _UploadMethod("sendVideo", "video")),
)
_FILE_FIELDS = ("document", "video", "audio", "voice", "animation")


def get_upload_method(mime_type: str) -> _UploadMethod:
    """Pick the Bot API send method for a MIME type."""
    lowered = (mime_type or "").lower()
    for prefix, upload_method in _UPLOAD_METHODS:
        if lowered.startswith(prefix):
            return upload_method
    return _DOCUMENT


def extract_file_id(message: dict[str, Any] | None) -> str | None:
    """Return the file_id of the media attached to a sent message."""
    if not message:
        return None
    photos = message.get("photo")
    if isinstance(photos, list) and photos:
        largest = max(photos, key=lambda p: p.get("file_size") or 0)
        return largest.get("file_id")
    for key in _FILE_FIELDS:
        media = message.get(key)
        if isinstance(media, dict) and media.get("file_id"):
            return str(media["file_id"])
    return None


class TelegramClient:
    """Async client for the Telegram Bot HTTP API.

    Args:
        bot_token: Bot token issued by BotFather.
        channel_id: Storage channel or chat id.
        api_base: Bot API server (a self-hosted ``telegram-bot-api`` lifts size limits).
        timeout: Per-request timeout in seconds.
        http_client: Pre-configured client (tests inject a mock transport here).
    """

    def __init__(
        self,
        bot_token: str,
        channel_id: str,
        api_base: str = "https://api.telegram.org",
        timeout: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not bot_token or not channel_id:
            msg = "Telegram bot token and channel id are required"
            raise StoreConfigurationError(msg)
        self._bot_token = bot_token
        self.channel_id = channel_id
        self.api_base = api_base.rstrip("/")
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._http.aclose()

    # ── Internal helpers ────────────────────────────────

    def _url(self, method: str) -> str:
        return f"{self.api_base}/bot{self._bot_token}/{method}"

    def _cdn_url(self, file_path: str) -> str:
        return f"{self.api_base}/file/bot{self._bot_token}/{file_path}"

    async def _post(self, method: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._http.post(self._url(method), **kwargs)
        except httpx.HTTPError as exc:
            # httpx messages can carry the request URL, which holds the token.
            msg = f"{method} request failed: {type(exc).__name__}"
            raise UpstreamError(STORE_NAME, msg) from None

    async def _call(self, method: str, **kwargs: Any) -> Any:
        resp = await self._post(method, **kwargs)
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict) or not body.get("ok"):
            description = body.get("description", "unknown") if isinstance(body, dict) else ""
            msg = f"API error [{method}] ({resp.status_code}): {description}"
            raise UpstreamError(STORE_NAME, msg, status=resp.status_code)
        return body.get("result")

    async def _send_media(
        self,
        upload_method: _UploadMethod,
        data: bytes,
        file_name: str,
        mime_type: str,
        caption: str,
    ) -> dict[str, Any]:
        form: dict[str, str] = {"chat_id": str(self.channel_id)}
        if caption:
            form["caption"] = caption[:CAPTION_LIMIT]
        files = {upload_method.field: (file_name, data, mime_type or DEFAULT_MIME_TYPE)}
        result = await self._call(upload_method.method, data=form, files=files)
        return result if isinstance(result, dict) else {}

    # ── File operations ─────────────────────────────────

    async def upload_file(
        self,
        *,
        data: bytes,
        file_name: str,
        mime_type: str,
        file_size: int,
        caption: str = "",
    ) -> SecondaryUpload:
        """Post a file to the storage channel and return its file_id and message id.

        Photos, audio and video are sent with their dedicated methods; if Telegram
        rejects one (size, codec, dimensions), the file is re-sent as a document.
        """
        upload_method = get_upload_method(mime_type)
        try:
            result = await self._send_media(upload_method, data, file_name, mime_type, caption)
        except UpstreamError:
            if upload_method is _DOCUMENT:
                raise
            logger.warning(
                "%s rejected %s (%d bytes); retrying as document",
                upload_method.method,
                file_name,
                file_size,
            )
            result = await self._send_media(_DOCUMENT, data, file_name, mime_type, caption)

        file_id = extract_file_id(result)
        if not file_id:
            raise UpstreamError(STORE_NAME, "upload succeeded but no file_id found in response")
        return SecondaryUpload(id=file_id, ref=result.get("message_id"))

    async def get_file_path(self, file_id: str) -> str:
        """Resolve a file_id to its path on the Bot API file server."""
        result = await self._call("getFile", json={"file_id": file_id})
        file_path = (result or {}).get("file_path")
        if not file_path:
            raise UpstreamError(STORE_NAME, f"getFile returned no file_path for {file_id}")
        return str(file_path)

    async def download_file(self, file_id: str) -> FetchedFile:
        """Download a stored file by file_id."""
        file_path = await self.get_file_path(file_id)
        try:
            resp = await self._http.get(self._cdn_url(file_path))
        except httpx.HTTPError as exc:
            msg = f"file download failed: {type(exc).__name__}"
            raise UpstreamError(STORE_NAME, msg) from None
        if not resp.is_success:
            msg = f"file download failed ({resp.status_code})"
            raise UpstreamError(STORE_NAME, msg, status=resp.status_code)
        mime_type = resp.headers.get("content-type") or DEFAULT_MIME_TYPE
        return FetchedFile(data=resp.content, mime_type=mime_type)

    # ── Messaging ───────────────────────────────────────

    async def send_message(
        self,
        text: str,
        chat_id: str | int | None = None,
        reply_to_message_id: int | None = None,
    ) -> dict[str, Any]:
        """Send a text message, optionally as a reply."""
        payload: dict[str, Any] = {
            "chat_id": chat_id if chat_id is not None else self.channel_id,
            "text": str(text or "")[:MESSAGE_LIMIT],
            "disable_web_page_preview": True,
        }
        if reply_to_message_id:
            payload["reply_to_message_id"] = int(reply_to_message_id)
            payload["allow_sending_without_reply"] = True
        result = await self._call("sendMessage", json=payload)
        return result if isinstance(result, dict) else {}

    async def set_webhook(self, url: str, secret: str = "") -> bool:
        """Point the bot's updates at ``url``."""
        payload: dict[str, Any] = {"url": url}
        if secret:
            payload["secret_token"] = secret
        return bool(await self._call("setWebhook", json=payload))
