"""Download proxy: serve file bytes whether or not Cloudreve still holds a copy.

Flow for a path:

1. Look up the mapping (``MappingNotFoundError`` if none) and record the access.
2. Cache hit: if the mapping is cached, fetch the bytes from Cloudreve. Any failure
   there falls through to the restore path instead of failing the request.
3. Restore: fetch the bytes from Telegram, re-upload them to Cloudreve and mark the
   mapping cached again. If that upload fails the caller still gets the bytes and the
   mapping is marked evicted.

Telegram download URLs never leave the store client; callers only ever see bytes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from kvault.exceptions import MappingNotFoundError, UpstreamError
from kvault.stores.base import DEFAULT_MIME_TYPE
from kvault.stores.cloudreve import parent_dir

if TYPE_CHECKING:
    from kvault.context import AppContext
    from kvault.services.mapping_service import MappingRecord

logger = logging.getLogger(__name__)

DEFAULT_FILE_NAME = "file"


@dataclass
class ProxiedFile:
    """File bytes returned to a caller of the download proxy."""

    data: bytes
    file_name: str
    mime_type: str


async def download_proxy(ctx: AppContext, path: str) -> ProxiedFile:
    """Return the bytes for ``path``, restoring the Cloudreve copy on a miss."""
    mapping = await ctx.mappings.get_by_path(path)
    if mapping is None:
        raise MappingNotFoundError(path)

    await ctx.mappings.touch(path)

    if mapping.cached and mapping.primary_id:
        served = await _serve_from_primary(ctx, mapping)
        if served is not None:
            return served

    return await _restore(ctx, mapping)


async def _serve_from_primary(ctx: AppContext, mapping: MappingRecord) -> ProxiedFile | None:
    try:
        fetched = await ctx.primary.download_file(str(mapping.primary_id))
    except UpstreamError as exc:
        logger.warning(
            "Cloudreve download of %s failed (%s), restoring from Telegram", mapping.path, exc
        )
        return None
    return ProxiedFile(
        data=fetched.data,
        file_name=mapping.file_name or DEFAULT_FILE_NAME,
        mime_type=mapping.mime_type or fetched.mime_type or DEFAULT_MIME_TYPE,
    )


async def _restore(ctx: AppContext, mapping: MappingRecord) -> ProxiedFile:
    path = mapping.path
    logger.info("Restoring %s from Telegram", path)

    fetched = await ctx.secondary.download_file(mapping.secondary_id)
    mime_type = mapping.mime_type or fetched.mime_type or DEFAULT_MIME_TYPE
    file_name = mapping.file_name or DEFAULT_FILE_NAME
    served = ProxiedFile(data=fetched.data, file_name=file_name, mime_type=mime_type)

    # One restore upload per path at a time; a second request for the same cold
    # file re-reads the mapping and skips the upload if the first one landed.
    async with ctx.locks.lock(path):
        current = await ctx.mappings.get_by_path(path)
        if current is not None and current.cached and current.primary_id != mapping.primary_id:
            return served

        try:
            await ctx.primary.ensure_directory(parent_dir(path))
            primary_id = await ctx.primary.upload_file(
                path=path,
                file_name=file_name,
                file_size=len(fetched.data),
                mime_type=mime_type,
                data=fetched.data,
            )
        except UpstreamError as exc:
            logger.error("Failed to restore %s to Cloudreve: %s", path, exc)
            await ctx.mappings.mark_evicted(path)
            return served

        base = current or mapping
        await ctx.mappings.upsert(
            base.evolve(
                primary_id=str(primary_id),
                file_name=file_name,
                file_size=len(fetched.data),
                mime_type=mime_type,
                last_accessed=ctx.clock(),
                cached=True,
            )
        )
    logger.info("Restored %s to Cloudreve (id=%s)", path, primary_id)
    return served
