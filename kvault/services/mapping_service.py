"""Mapping store: the durable path -> (Cloudreve, Telegram) table.

Every mutating operation runs as a single SQL statement in its own session and is
committed immediately, so concurrent restore, eviction and sync work on one row never
interleave inside a statement. Rows are handed out as frozen ``MappingRecord``
snapshots rather than live ORM objects.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select, update
from sqlalchemy.dialects import postgresql, sqlite

from kvault.exceptions import InternalServerError
from kvault.models.mapping import FileMapping
from kvault.services.time_service import Clock, now_ts

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)

# Columns overwritten when an upsert hits an existing path. created_at is never touched.
_UPSERT_COLUMNS = (
    "primary_id",
    "secondary_id",
    "secondary_ref",
    "file_name",
    "file_size",
    "mime_type",
    "last_accessed",
    "cached",
)


@dataclass(frozen=True)
class MappingRecord:
    """Snapshot of one row of the mapping table."""

    path: str
    secondary_id: str
    primary_id: str | None = None
    secondary_ref: int | None = None
    file_name: str | None = None
    file_size: int = 0
    mime_type: str | None = None
    last_accessed: int = 0
    created_at: int | None = None
    cached: bool = True

    @classmethod
    def from_row(cls, row: FileMapping) -> MappingRecord:
        return cls(
            path=row.path,
            secondary_id=row.secondary_id,
            primary_id=row.primary_id,
            secondary_ref=row.secondary_ref,
            file_name=row.file_name,
            file_size=row.file_size,
            mime_type=row.mime_type,
            last_accessed=row.last_accessed,
            created_at=row.created_at,
            cached=row.cached,
        )

    def evolve(self, **changes: Any) -> MappingRecord:
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)


def _dialect_insert(dialect_name: str) -> Any:
    if dialect_name == "postgresql":
        return postgresql.insert
    if dialect_name == "sqlite":
        return sqlite.insert
    msg = f"Unsupported database dialect for mapping upserts: {dialect_name}"
    raise InternalServerError(msg)


class MappingStore:
    """Create, look up and update file mappings.

    Args:
        session_factory: Factory for short-lived async sessions.
        clock: Returns the current time in epoch seconds.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock = now_ts,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def _values(self, record: MappingRecord) -> dict[str, Any]:
        if not record.secondary_id:
            msg = f"Mapping for {record.path!r} must carry a secondary id"
            raise InternalServerError(msg)
        return {
            "path": record.path,
            "primary_id": record.primary_id,
            "secondary_id": record.secondary_id,
            "secondary_ref": record.secondary_ref,
            "file_name": record.file_name,
            "file_size": record.file_size or 0,
            "mime_type": record.mime_type,
            "last_accessed": record.last_accessed or 0,
            "created_at": record.created_at if record.created_at is not None else self._clock(),
            "cached": record.cached,
        }

    async def upsert(self, record: MappingRecord) -> None:
        """Create the mapping for ``record.path`` or overwrite it in place.

        On conflict every field except ``created_at`` takes the new value.
        """
        values = self._values(record)
        async with self._session_factory() as session:
            insert = _dialect_insert(session.get_bind().dialect.name)
            stmt = insert(FileMapping).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=[FileMapping.path],
                set_={column: stmt.excluded[column] for column in _UPSERT_COLUMNS},
            )
            await session.execute(stmt)
            await session.commit()
        logger.debug("Upserted mapping for %s", record.path)

    async def get_by_path(self, path: str) -> MappingRecord | None:
        """Look up a mapping by its logical path."""
        async with self._session_factory() as session:
            result = await session.execute(select(FileMapping).where(FileMapping.path == path))
            row = result.scalar_one_or_none()
        return MappingRecord.from_row(row) if row is not None else None

    async def get_by_primary_id(self, primary_id: str) -> MappingRecord | None:
        """Look up a mapping by its Cloudreve file id."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(FileMapping).where(FileMapping.primary_id == primary_id).limit(1)
            )
            row = result.scalar_one_or_none()
        return MappingRecord.from_row(row) if row is not None else None

    async def _update(self, path: str, **values: Any) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                update(FileMapping).where(FileMapping.path == path).values(**values)
            )
            await session.commit()
        return bool(result.rowcount)

    async def touch(self, path: str) -> bool:
        """Record an access. Returns False (and changes nothing) if the path is unmapped."""
        return await self._update(path, last_accessed=self._clock())

    async def mark_evicted(self, path: str) -> bool:
        """Record that no valid Cloudreve copy exists for ``path``."""
        return await self._update(path, cached=False)

    async def mark_cached(self, path: str) -> bool:
        """Record that a Cloudreve copy exists again; also counts as an access."""
        return await self._update(path, cached=True, last_accessed=self._clock())

    async def list_stale(self, idle_seconds: int) -> list[MappingRecord]:
        """Cached mappings idle for longer than ``idle_seconds``.

        Rows with ``last_accessed == 0`` have never been served and are skipped.
        """
        cutoff = self._clock() - idle_seconds
        stmt = select(FileMapping).where(
            FileMapping.cached.is_(True),
            FileMapping.last_accessed < cutoff,
            FileMapping.last_accessed > 0,
        )
        return await self._select(stmt)

    async def list_evicted(self) -> list[MappingRecord]:
        """Mappings whose Cloudreve copy has been evicted."""
        return await self._select(select(FileMapping).where(FileMapping.cached.is_(False)))

    async def list_mappings(self, limit: int = 100, offset: int = 0) -> list[MappingRecord]:
        """Page through mappings, newest first."""
        stmt = (
            select(FileMapping)
            .order_by(FileMapping.created_at.desc(), FileMapping.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return await self._select(stmt)

    async def count(self) -> int:
        """Total number of mappings."""
        async with self._session_factory() as session:
            result = await session.execute(select(func.count()).select_from(FileMapping))
            return int(result.scalar_one())

    async def _select(self, stmt: Any) -> list[MappingRecord]:
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [MappingRecord.from_row(row) for row in result.scalars().all()]
