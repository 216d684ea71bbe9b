"""Per-path mutual exclusion for mapping creation and restore."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


class PathLockTable:
    """Hand out one ``asyncio.Lock`` per logical path.

    Entries are reference counted and dropped once no task holds or waits on them,
    so the table only grows with the number of paths in flight.

    Thread-safety: safe under asyncio's single-threaded cooperative model. The
    bookkeeping around ``_locks`` has no await points between read and mutation.
    """

    def __init__(self) -> None:
        self._locks: dict[str, tuple[asyncio.Lock, int]] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def is_locked(self, path: str) -> bool:
        entry = self._locks.get(path)
        return entry is not None and entry[0].locked()

    @asynccontextmanager
    async def lock(self, path: str) -> AsyncGenerator[None]:
        """Hold the lock for ``path`` for the duration of the block."""
        lock, users = self._locks.get(path, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[path] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            current_lock, current_users = self._locks[path]
            if current_users <= 1:
                del self._locks[path]
            else:
                self._locks[path] = (current_lock, current_users - 1)
