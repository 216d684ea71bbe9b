"""Shared API dependencies: settings, service context, DB session, shared-secret auth."""

from __future__ import annotations

import secrets
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from kvault.config import Settings
from kvault.context import AppContext
from kvault.services.bot_service import Replier
from kvault.services.eviction_service import EvictionResult
from kvault.services.task_service import PeriodicTask


def get_settings(request: Request) -> Settings:
    """Get application settings from app state."""
    settings: Settings = request.app.state.settings
    return settings


def get_context(request: Request) -> AppContext:
    """Get the service context from app state."""
    ctx: AppContext = request.app.state.context
    return ctx


def get_eviction_task(request: Request) -> PeriodicTask[EvictionResult]:
    """Get the eviction scheduler from app state."""
    task: PeriodicTask[EvictionResult] = request.app.state.eviction_task
    return task


def get_replier(request: Request) -> Replier:
    """Get the client used to answer bot messages."""
    replier: Replier = request.app.state.replier
    return replier


async def get_session(request: Request) -> AsyncGenerator[AsyncSession]:
    """Get a database session."""
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        yield session


def _matches(provided: str | None, expected: str) -> bool:
    return provided is not None and secrets.compare_digest(
        provided.encode("utf-8"), expected.encode("utf-8")
    )


async def require_webhook_secret(
    settings: Annotated[Settings, Depends(get_settings)],
    x_webhook_secret: Annotated[str | None, Header()] = None,
) -> None:
    """Require the shared secret on admin and Cloudreve routes. Open when unset."""
    if not settings.webhook_secret:
        return
    if not _matches(x_webhook_secret, settings.webhook_secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


async def verify_telegram_secret(
    settings: Annotated[Settings, Depends(get_settings)],
    x_telegram_bot_api_secret_token: Annotated[str | None, Header()] = None,
) -> None:
    """Check the secret Telegram echoes on webhook calls. Open when unset."""
    if not settings.tg_webhook_secret:
        return
    if not _matches(x_telegram_bot_api_secret_token, settings.tg_webhook_secret):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid Telegram webhook secret",
        )
