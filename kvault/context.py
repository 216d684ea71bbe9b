"""Explicit dependency container shared by the services.

Built once in the application lifespan (or directly in tests) and passed to every
service function. Nothing in kvault reaches for module-level clients or handles.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from kvault.services.lock_service import PathLockTable
from kvault.services.time_service import Clock, now_ts

if TYPE_CHECKING:
    from kvault.config import Settings
    from kvault.services.mapping_service import MappingStore
    from kvault.stores.base import PrimaryStore, SecondaryStore


@dataclass
class AppContext:
    """Settings, mapping store and store clients for one running instance."""

    settings: Settings
    mappings: MappingStore
    primary: PrimaryStore
    secondary: SecondaryStore
    locks: PathLockTable = field(default_factory=PathLockTable)
    clock: Clock = now_ts
