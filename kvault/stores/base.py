"""Store protocols and the data classes they exchange."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

DEFAULT_MIME_TYPE = "application/octet-stream"


@dataclass
class DirectoryEntry:
    """One child of a primary-store directory."""

    name: str
    type: str
    file_id: str
    size: int = 0

    @property
    def is_file(self) -> bool:
        return self.type == "file"


@dataclass
class DirectoryListing:
    """Immediate children of a primary-store directory."""

    objects: list[DirectoryEntry] = field(default_factory=list)
    parent: str | None = None


@dataclass
class FetchedFile:
    """File bytes plus the MIME type the store reported for them."""

    data: bytes
    mime_type: str = DEFAULT_MIME_TYPE


@dataclass
class SecondaryUpload:
    """Identity of a file stored in the secondary store."""

    id: str
    ref: int | None = None


@runtime_checkable
class PrimaryStore(Protocol):
    """User-facing store that doubles as the cache layer."""

    async def ensure_directory(self, path: str) -> None:
        """Create ``path`` (and parents) if it does not exist."""
        ...

    async def list_directory(self, path: str) -> DirectoryListing:
        """List the immediate children of ``path``."""
        ...

    async def download_file(self, file_id: str) -> FetchedFile:
        """Fetch a file's bytes by primary id."""
        ...

    async def upload_file(
        self,
        *,
        path: str,
        file_name: str,
        file_size: int,
        mime_type: str,
        data: bytes,
    ) -> str:
        """Store ``data`` at ``path`` and return the new primary id."""
        ...

    async def delete_file(self, path: str) -> None:
        """Delete the file at ``path``."""
        ...


@runtime_checkable
class SecondaryStore(Protocol):
    """Append-only durable store addressed by opaque ids."""

    async def upload_file(
        self,
        *,
        data: bytes,
        file_name: str,
        mime_type: str,
        file_size: int,
        caption: str = "",
    ) -> SecondaryUpload:
        """Append a file and return its identity."""
        ...

    async def download_file(self, file_id: str) -> FetchedFile:
        """Fetch a file's bytes by secondary id."""
        ...
