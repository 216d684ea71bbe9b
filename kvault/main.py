"""FastAPI application entry point."""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from kvault.api.admin import router as admin_router
from kvault.api.files import router as files_router
from kvault.api.health import router as health_router
from kvault.api.webhooks import router as webhooks_router
from kvault.config import Settings
from kvault.context import AppContext
from kvault.database import create_engine
from kvault.exceptions import (
    InternalServerError,
    MappingNotFoundError,
    StoreConfigurationError,
    UpstreamError,
)
from kvault.models.base import Base
from kvault.services.eviction_service import run_eviction_pass
from kvault.services.mapping_service import MappingStore
from kvault.services.sync_service import sync_directory
from kvault.services.task_service import PeriodicTask, seconds_until_hour
from kvault.stores.cloudreve import CloudreveClient
from kvault.stores.telegram import TelegramClient

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from kvault.services.eviction_service import EvictionResult
    from kvault.services.sync_service import SyncResult

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool) -> None:
    """Configure application logging."""
    level = logging.DEBUG if debug else logging.INFO
    fmt = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        stream=sys.stdout,
        force=True,
    )
    # Quiet noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if debug else logging.WARNING)


def build_tasks(
    ctx: AppContext,
) -> tuple[PeriodicTask[SyncResult] | None, PeriodicTask[EvictionResult]]:
    """Create the sync poller (None when polling is disabled) and the eviction scheduler."""
    settings = ctx.settings

    sync_task: PeriodicTask[SyncResult] | None = None
    if settings.poll_interval_minutes > 0:
        interval = settings.poll_interval_minutes * 60
        sync_task = PeriodicTask(
            "sync-poller",
            lambda: sync_directory(ctx),
            lambda: interval,
            run_on_start=settings.initial_sync,
        )

    eviction_task: PeriodicTask[EvictionResult] = PeriodicTask(
        "eviction",
        lambda: run_eviction_pass(ctx),
        lambda: seconds_until_hour(settings.eviction_hour_utc),
    )
    return sync_task, eviction_task


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan: startup and shutdown."""
    settings: Settings = app.state.settings
    _configure_logging(settings.debug)
    try:
        settings.validate_runtime_config()
    except StoreConfigurationError as exc:
        logger.critical("Invalid configuration: %s", exc)
        raise
    logger.info("Starting kvault (debug=%s)", settings.debug)

    db_url = settings.database_url
    if db_url.startswith("sqlite"):
        db_path = db_url.split("///", 1)[-1] if "///" in db_url else None
        if db_path and db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    try:
        engine, session_factory = create_engine(settings)
        app.state.engine = engine
        app.state.session_factory = session_factory
    except Exception as exc:
        logger.critical(
            "Failed to initialize database: %s. Check database path and permissions.", exc
        )
        raise

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except Exception as exc:
        logger.critical("Failed to create database schema: %s.", exc)
        raise

    cloudreve = CloudreveClient(
        settings.cloudreve_url,
        user=settings.cloudreve_user,
        password=settings.cloudreve_password,
        admin_token=settings.cloudreve_admin_token,
        timeout=settings.store_timeout_seconds,
    )
    telegram = TelegramClient(
        settings.tg_bot_token,
        settings.tg_channel_id,
        api_base=settings.tg_api_base,
        timeout=settings.store_timeout_seconds,
    )

    ctx = AppContext(
        settings=settings,
        mappings=MappingStore(session_factory),
        primary=cloudreve,
        secondary=telegram,
    )
    app.state.context = ctx
    app.state.replier = telegram

    sync_task, eviction_task = build_tasks(ctx)
    app.state.sync_task = sync_task
    app.state.eviction_task = eviction_task
    if sync_task is not None:
        sync_task.start()
    else:
        logger.info("Periodic sync disabled (POLL_INTERVAL_MINUTES=0)")
    eviction_task.start()
    logger.info(
        "Eviction scheduled daily at %02d:00 UTC (idle threshold %d days)",
        settings.eviction_hour_utc,
        settings.cache_idle_days,
    )

    yield

    for task in (sync_task, eviction_task):
        if task is None:
            continue
        try:
            await task.stop()
        except Exception as exc:
            logger.error("Error stopping %s: %s", task.name, exc, exc_info=True)

    for client in (cloudreve, telegram):
        try:
            await client.aclose()
        except Exception as exc:
            logger.error("Error closing store client: %s", exc, exc_info=True)

    try:
        await engine.dispose()
    except Exception as exc:
        logger.error("Error during engine disposal: %s", exc, exc_info=True)

    logger.info("kvault stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    if settings is None:
        settings = Settings()

    app = FastAPI(
        title="kvault",
        description="Cloudreve cache in front of permanent Telegram storage",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
    )
    app.state.settings = settings

    app.include_router(health_router)
    app.include_router(admin_router)
    app.include_router(files_router)
    app.include_router(webhooks_router)

    # Global exception handlers: safety net for errors routes do not translate

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = []
        for err in exc.errors():
            loc = err.get("loc", ())
            field = str(loc[-1]) if loc else "unknown"
            errors.append({"field": field, "message": err.get("msg", "Invalid value")})
        logger.warning(
            "RequestValidationError in %s %s: %s",
            request.method,
            request.url.path,
            errors,
        )
        return JSONResponse(status_code=422, content={"detail": errors})

    @app.exception_handler(MappingNotFoundError)
    async def mapping_not_found_handler(
        request: Request, exc: MappingNotFoundError
    ) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(UpstreamError)
    async def upstream_error_handler(request: Request, exc: UpstreamError) -> JSONResponse:
        logger.error(
            "UpstreamError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc
        )
        return JSONResponse(
            status_code=502,
            content={"detail": "Storage backend unavailable"},
        )

    @app.exception_handler(StoreConfigurationError)
    async def store_configuration_handler(
        request: Request, exc: StoreConfigurationError
    ) -> JSONResponse:
        logger.error(
            "StoreConfigurationError in %s %s: %s",
            request.method,
            request.url.path,
            exc,
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Storage backend misconfigured"},
        )

    @app.exception_handler(InternalServerError)
    async def internal_server_error_handler(
        request: Request, exc: InternalServerError
    ) -> JSONResponse:
        logger.error(
            "InternalServerError in %s %s: %s",
            request.method,
            request.url.path,
            exc,
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    @app.exception_handler(OperationalError)
    async def operational_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
        logger.error(
            "OperationalError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc
        )
        return JSONResponse(
            status_code=503,
            content={"detail": "Database temporarily unavailable"},
        )

    return app


app = create_app()


def cli_entry() -> None:
    """CLI entry point for running the server."""
    import uvicorn

    settings: Settings = app.state.settings
    uvicorn.run(
        "kvault.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
