"""Primary (Cloudreve) and secondary (Telegram) store clients."""

from kvault.stores.base import (
    DirectoryEntry,
    DirectoryListing,
    FetchedFile,
    PrimaryStore,
    SecondaryStore,
    SecondaryUpload,
)

__all__ = [
    "DirectoryEntry",
    "DirectoryListing",
    "FetchedFile",
    "PrimaryStore",
    "SecondaryStore",
    "SecondaryUpload",
]
