"""Admin endpoints: mapping listing and manual sync/eviction passes."""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from kvault.api.deps import get_context, get_eviction_task, require_webhook_secret
from kvault.context import AppContext
from kvault.schemas.mapping import (
    EvictionResponse,
    MappingListResponse,
    MappingResponse,
    SyncRequest,
    SyncResponse,
)
from kvault.services.eviction_service import EvictionResult
from kvault.services.sync_service import sync_directory
from kvault.services.task_service import PeriodicTask

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["admin"], dependencies=[Depends(require_webhook_secret)])

MAX_PAGE_SIZE = 1000


@router.get("/mappings", response_model=MappingListResponse)
async def list_mappings(
    ctx: Annotated[AppContext, Depends(get_context)],
    limit: Annotated[int, Query()] = 100,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> MappingListResponse:
    """List file mappings, newest first. ``limit`` is clamped to 1..1000."""
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    rows = await ctx.mappings.list_mappings(limit, offset)
    return MappingListResponse(
        total=await ctx.mappings.count(),
        mappings=[MappingResponse(**asdict(row)) for row in rows],
    )


@router.post("/sync", response_model=SyncResponse)
async def trigger_sync(
    ctx: Annotated[AppContext, Depends(get_context)],
    body: SyncRequest | None = None,
) -> SyncResponse:
    """Run one sync pass over a directory (the inbox by default)."""
    result = await sync_directory(ctx, body.path if body else None)
    return SyncResponse(synced=result.synced, errors=result.errors)


@router.post("/evict", response_model=EvictionResponse)
async def trigger_eviction(
    eviction_task: Annotated[PeriodicTask[EvictionResult], Depends(get_eviction_task)],
) -> EvictionResponse:
    """Run one eviction pass now."""
    result = await eviction_task.run_once()
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An eviction pass is already running",
        )
    return EvictionResponse(evicted=result.evicted, errors=result.errors)
