"""Inbound webhooks from Telegram and Cloudreve."""

from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, BackgroundTasks, Body, Depends, HTTPException, status

from kvault.api.deps import get_context, get_replier, require_webhook_secret, verify_telegram_secret
from kvault.context import AppContext
from kvault.exceptions import KvaultError
from kvault.schemas.mapping import CloudreveWebhookRequest, WebhookAck
from kvault.services.bot_service import Replier, handle_update
from kvault.services.sync_service import sync_directory
from kvault.stores.cloudreve import parent_dir

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


async def _process_update(ctx: AppContext, replier: Replier, update: dict[str, Any]) -> None:
    try:
        await handle_update(ctx, replier, update)
    except KvaultError as exc:
        logger.error("Telegram webhook processing failed: %s", exc)


async def _sync_in_background(ctx: AppContext, dir_path: str) -> None:
    try:
        await sync_directory(ctx, dir_path)
    except KvaultError as exc:
        logger.error("Cloudreve webhook sync of %s failed: %s", dir_path, exc)


@router.post(
    "/telegram/webhook",
    response_model=WebhookAck,
    dependencies=[Depends(verify_telegram_secret)],
)
async def telegram_webhook(
    update: Annotated[dict[str, Any], Body()],
    background_tasks: BackgroundTasks,
    ctx: Annotated[AppContext, Depends(get_context)],
    replier: Annotated[Replier, Depends(get_replier)],
) -> WebhookAck:
    """Acknowledge a bot update immediately and import its file afterwards."""
    background_tasks.add_task(_process_update, ctx, replier, update)
    return WebhookAck()


@router.post(
    "/cloudreve/webhook",
    response_model=WebhookAck,
    dependencies=[Depends(require_webhook_secret)],
)
async def cloudreve_webhook(
    body: CloudreveWebhookRequest,
    background_tasks: BackgroundTasks,
    ctx: Annotated[AppContext, Depends(get_context)],
) -> WebhookAck:
    """Sync the directory of a freshly uploaded Cloudreve file."""
    if not body.path:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing path in request body",
        )
    background_tasks.add_task(_sync_in_background, ctx, parent_dir(body.path))
    return WebhookAck(message="Sync queued")
