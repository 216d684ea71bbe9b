"""Import service: materialize a Telegram file into the Cloudreve inbox."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from kvault.services.mapping_service import MappingRecord
from kvault.services.sync_service import join_path

if TYPE_CHECKING:
    from kvault.context import AppContext

logger = logging.getLogger(__name__)

MAX_FILE_NAME_LENGTH = 200

_UNSAFE_CHARS_RE = re.compile(r'[/\\:*?"<>|]')
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass
class ImportRequest:
    """A file already stored in Telegram, e.g. one sent to the bot."""

    secondary_id: str
    file_name: str | None = None
    mime_type: str | None = None
    file_size: int = 0
    secondary_ref: int | None = None


@dataclass
class ImportResult:
    """Where an imported file landed and how users can reach it."""

    path: str
    secondary_id: str
    link: str


def sanitize_file_name(name: str | None) -> str:
    """Make a file name safe to use as a single Cloudreve path segment."""
    cleaned = _UNSAFE_CHARS_RE.sub("_", str(name or ""))
    cleaned = _WHITESPACE_RE.sub("_", cleaned)
    cleaned = cleaned[:MAX_FILE_NAME_LENGTH]
    return cleaned or "file"


def build_share_link(base_url: str, path: str) -> str:
    """Cloudreve share link for ``path``. Never a Telegram URL."""
    return f"{base_url.rstrip('/')}/s{path}"


async def import_file(ctx: AppContext, request: ImportRequest) -> ImportResult:
    """Copy a Telegram file into the inbox and record its mapping.

    If the destination path is already mapped, returns the existing mapping's
    secondary id without touching either store.
    """
    inbox_dir = ctx.settings.cloudreve_inbox_path
    safe_name = sanitize_file_name(request.file_name)
    dest_path = join_path(inbox_dir, safe_name)
    link = build_share_link(ctx.settings.cloudreve_url, dest_path)

    async with ctx.locks.lock(dest_path):
        existing = await ctx.mappings.get_by_path(dest_path)
        if existing is not None:
            logger.info("%s already imported, skipping", dest_path)
            return ImportResult(path=dest_path, secondary_id=existing.secondary_id, link=link)

        await ctx.primary.ensure_directory(inbox_dir)
        fetched = await ctx.secondary.download_file(request.secondary_id)
        mime_type = request.mime_type or fetched.mime_type

        primary_id = await ctx.primary.upload_file(
            path=dest_path,
            file_name=safe_name,
            file_size=len(fetched.data),
            mime_type=mime_type,
            data=fetched.data,
        )

        now = ctx.clock()
        await ctx.mappings.upsert(
            MappingRecord(
                path=dest_path,
                primary_id=str(primary_id),
                secondary_id=request.secondary_id,
                secondary_ref=request.secondary_ref,
                file_name=safe_name,
                file_size=request.file_size or len(fetched.data),
                mime_type=mime_type,
                last_accessed=now,
                created_at=now,
                cached=True,
            )
        )

    logger.info("Imported %s from Telegram -> %s", safe_name, dest_path)
    return ImportResult(path=dest_path, secondary_id=request.secondary_id, link=link)
