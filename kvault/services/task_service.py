"""Managed background loops for periodic sync and scheduled eviction."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

T = TypeVar("T")


def seconds_until_hour(hour: int, now: datetime | None = None) -> float:
    """Seconds from ``now`` until the next ``hour``:00 UTC."""
    if now is None:
        now = datetime.now(UTC)
    target = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


class PeriodicTask(Generic[T]):
    """Run ``job`` repeatedly in the background, never two runs at once.

    ``run_once`` is also the entry point for on-demand runs: if a run is already in
    flight, the new one is suppressed and ``None`` is returned.

    Args:
        name: Label used in logs.
        job: Coroutine factory performing one pass.
        next_delay: Returns the number of seconds to sleep before the next pass.
        run_on_start: Run one pass immediately when the loop starts.
    """

    def __init__(
        self,
        name: str,
        job: Callable[[], Awaitable[T]],
        next_delay: Callable[[], float],
        run_on_start: bool = False,
    ) -> None:
        self.name = name
        self._job = job
        self._next_delay = next_delay
        self._run_on_start = run_on_start
        self._in_flight = False
        self._task: asyncio.Task[None] | None = None

    @property
    def in_flight(self) -> bool:
        """Whether a pass is currently running."""
        return self._in_flight

    @property
    def is_running(self) -> bool:
        """Whether the background loop is active."""
        return self._task is not None and not self._task.done()

    async def run_once(self) -> T | None:
        """Run one pass now. Returns None if another pass is already running."""
        if self._in_flight:
            logger.info("%s: pass already in progress, skipping", self.name)
            return None
        self._in_flight = True
        try:
            return await self._job()
        finally:
            self._in_flight = False

    def start(self) -> None:
        """Start the background loop (no-op if already started)."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._loop(), name=self.name)
        logger.info("%s: background loop started", self.name)

    async def stop(self) -> None:
        """Cancel the background loop and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("%s: background loop stopped", self.name)

    async def _loop(self) -> None:
        if self._run_on_start:
            await self._run_logged()
        while True:
            await asyncio.sleep(self._next_delay())
            await self._run_logged()

    async def _run_logged(self) -> None:
        try:
            result = await self.run_once()
        except Exception as exc:
            # A failed pass is retried on the next tick.
            logger.error("%s: pass failed: %s", self.name, exc, exc_info=exc)
            return
        if result is not None:
            logger.debug("%s: pass finished: %s", self.name, result)
