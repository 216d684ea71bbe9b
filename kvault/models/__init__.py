"""SQLAlchemy ORM models for kvault."""

from kvault.models.base import Base
from kvault.models.mapping import FileMapping

__all__ = [
    "Base",
    "FileMapping",
]
