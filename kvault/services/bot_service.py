"""Telegram bot update handling.

Imports any media file sent to the bot (or posted in a watched channel) into the
Cloudreve inbox and replies with the Cloudreve share link.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from kvault.exceptions import KvaultError
from kvault.services.import_service import ImportRequest, import_file

if TYPE_CHECKING:
    from kvault.context import AppContext

logger = logging.getLogger(__name__)


class Replier(Protocol):
    async def send_message(
        self,
        text: str,
        chat_id: str | int | None = None,
        reply_to_message_id: int | None = None,
    ) -> dict[str, Any]: ...


@dataclass
class Media:
    """A file attached to an incoming message."""

    file_id: str
    file_name: str
    mime_type: str
    file_size: int = 0


# (message key, fallback MIME type, fallback extension)
_MEDIA_KINDS = (
    ("document", "application/octet-stream", "bin"),
    ("video", "video/mp4", "mp4"),
    ("audio", "audio/mpeg", "mp3"),
    ("voice", "audio/ogg", "ogg"),
    ("animation", "video/mp4", "mp4"),
    ("video_note", "video/mp4", "mp4"),
    ("sticker", "image/webp", "webp"),
)


def extract_media(message: dict[str, Any] | None) -> Media | None:
    """Return the media attached to ``message``, or None for text-only messages."""
    if not message:
        return None
    message_id = message.get("message_id") or int(time.time())

    photos = message.get("photo")
    if isinstance(photos, list) and photos:
        photo = max(photos, key=lambda p: p.get("file_size") or 0)
        return Media(
            file_id=photo["file_id"],
            file_name=f"photo_{message_id}.jpg",
            mime_type="image/jpeg",
            file_size=photo.get("file_size") or 0,
        )

    for key, fallback_mime, fallback_ext in _MEDIA_KINDS:
        data = message.get(key)
        if not isinstance(data, dict) or not data.get("file_id"):
            continue
        file_name = data.get("file_name") or f"{key}_{message_id}.{fallback_ext}"
        return Media(
            file_id=data["file_id"],
            file_name=file_name,
            mime_type=data.get("mime_type") or fallback_mime,
            file_size=data.get("file_size") or 0,
        )
    return None


async def handle_update(ctx: AppContext, replier: Replier, update: dict[str, Any]) -> None:
    """Process one Telegram update."""
    message = update.get("message") or update.get("channel_post")
    if not message:
        return

    media = extract_media(message)
    if media is None:
        return

    chat_id = (message.get("chat") or {}).get("id")
    message_id = message.get("message_id")

    try:
        result = await import_file(
            ctx,
            ImportRequest(
                secondary_id=media.file_id,
                secondary_ref=message_id,
                file_name=media.file_name,
                mime_type=media.mime_type,
                file_size=media.file_size,
            ),
        )
    except KvaultError as exc:
        logger.error("Failed to import %s from Telegram: %s", media.file_name, exc)
        await _reply(replier, chat_id, message_id, f"❌ Import failed: {exc}")
        return

    text = "\n".join(
        [
            "✅ File imported successfully",
            f"Name: {media.file_name}",
            f"Cloudreve path: {result.path}",
            f"Link: {result.link}",
        ]
    )
    await _reply(replier, chat_id, message_id, text)


async def _reply(replier: Replier, chat_id: Any, message_id: Any, text: str) -> None:
    try:
        await replier.send_message(text, chat_id=chat_id, reply_to_message_id=message_id)
    except KvaultError as exc:
        logger.warning("Failed to send reply to chat %s: %s", chat_id, exc)
