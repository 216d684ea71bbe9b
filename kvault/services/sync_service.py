"""Sync service: back up new Cloudreve files to Telegram and record mappings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from kvault.services.mapping_service import MappingRecord

if TYPE_CHECKING:
    from kvault.context import AppContext
    from kvault.stores.base import DirectoryEntry

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Outcome of one sync pass. Partial failure is reported here, never raised."""

    synced: int = 0
    errors: int = 0
    skipped: int = 0


def join_path(dir_path: str, name: str) -> str:
    """Join a Cloudreve directory and a child name."""
    return f"{dir_path.rstrip('/')}/{name}"


async def sync_directory(ctx: AppContext, dir_path: str | None = None) -> SyncResult:
    """Back up every unmapped file directly inside ``dir_path``.

    A path that already has a mapping counts as backed up whatever its cache state.
    Each file is handled independently: any failure while backing it up, in either
    store or in the mapping table, is counted and the pass moves on. Failing to create
    or list the directory itself is raised, since there is no batch to continue.
    """
    target_dir = dir_path or ctx.settings.cloudreve_inbox_path
    await ctx.primary.ensure_directory(target_dir)
    listing = await ctx.primary.list_directory(target_dir)
    files = [obj for obj in listing.objects if obj.is_file]

    result = SyncResult()
    for entry in files:
        file_path = join_path(target_dir, entry.name)
        # Held across the existence check and the upsert, so concurrent passes over
        # the same directory upload each path at most once.
        async with ctx.locks.lock(file_path):
            try:
                if await ctx.mappings.get_by_path(file_path) is not None:
                    result.skipped += 1
                    continue
                await _backup_file(ctx, file_path, entry)
            except Exception as exc:
                logger.error("Error backing up %s: %s", file_path, exc, exc_info=exc)
                result.errors += 1
                continue
        result.synced += 1

    if result.synced or result.errors:
        logger.info(
            "Sync of %s complete: synced=%d errors=%d",
            target_dir,
            result.synced,
            result.errors,
        )
    return result


async def _backup_file(ctx: AppContext, file_path: str, entry: DirectoryEntry) -> None:
    fetched = await ctx.primary.download_file(entry.file_id)
    uploaded = await ctx.secondary.upload_file(
        data=fetched.data,
        file_name=entry.name,
        mime_type=fetched.mime_type,
        file_size=len(fetched.data),
        caption=f"Synced from Cloudreve: {file_path}",
    )

    now = ctx.clock()
    await ctx.mappings.upsert(
        MappingRecord(
            path=file_path,
            primary_id=str(entry.file_id),
            secondary_id=uploaded.id,
            secondary_ref=uploaded.ref,
            file_name=entry.name,
            file_size=entry.size or len(fetched.data),
            mime_type=fetched.mime_type,
            last_accessed=now,
            created_at=now,
            cached=True,
        )
    )
    logger.info("Backed up %s -> telegram file_id=%s", file_path, uploaded.id)
