"""File mapping model."""

from __future__ import annotations

from sqlalchemy import Boolean, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from kvault.models.base import Base


class FileMapping(Base):
    """Links a Cloudreve path to its Telegram copy and records cache state.

    ``secondary_id`` is the permanent anchor; ``primary_id`` may be stale once the
    Cloudreve copy has been evicted (``cached`` is False).
    """

    __tablename__ = "file_mappings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    primary_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    path: Mapped[str] = mapped_column(Text, nullable=False)
    secondary_id: Mapped[str] = mapped_column(Text, nullable=False)
    secondary_ref: Mapped[int | None] = mapped_column(Integer, nullable=True)
    file_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    mime_type: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_accessed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[int] = mapped_column(Integer, nullable=False)
    cached: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("idx_file_mappings_path", "path", unique=True),
        Index("idx_file_mappings_last_accessed", "last_accessed"),
        Index("idx_file_mappings_cached", "cached"),
    )
