"""Cache eviction: delete Cloudreve copies of files nobody has read recently.

The Telegram file id is kept, so the next download restores the file.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from kvault.context import AppContext

logger = logging.getLogger(__name__)


@dataclass
class EvictionResult:
    """Outcome of one eviction pass. Partial failure is reported here, never raised."""

    evicted: int = 0
    errors: int = 0


async def run_eviction_pass(ctx: AppContext, idle_seconds: int | None = None) -> EvictionResult:
    """Evict every cached mapping idle for longer than the configured threshold."""
    if idle_seconds is None:
        idle_seconds = ctx.settings.idle_seconds
    stale = await ctx.mappings.list_stale(idle_seconds)

    result = EvictionResult()
    if not stale:
        logger.info("Eviction run: no stale entries found")
        return result

    for entry in stale:
        async with ctx.locks.lock(entry.path):
            try:
                await ctx.primary.delete_file(entry.path)
                await ctx.mappings.mark_evicted(entry.path)
            except Exception as exc:
                logger.error("Failed to evict %s: %s", entry.path, exc, exc_info=exc)
                result.errors += 1
                continue
        logger.info(
            "Evicted %s (last accessed %s)",
            entry.path,
            datetime.fromtimestamp(entry.last_accessed, UTC).isoformat(),
        )
        result.evicted += 1

    logger.info("Eviction run complete: evicted=%d errors=%d", result.evicted, result.errors)
    return result
