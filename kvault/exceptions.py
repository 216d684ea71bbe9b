"""Application-level exception types.

Convention:
- ``MappingNotFoundError``: no mapping exists for a requested path. Safe to report to
  clients; the API turns it into a 404.
- ``UpstreamError``: a call to the primary (Cloudreve) or secondary (Telegram) store failed:
  non-success response, malformed payload, timeout or transport error. Batch passes count it
  per item; request handlers that let it escape return a generic 502.
- ``StoreConfigurationError``: a store client cannot be built at all (missing URL or
  credentials). Fatal at startup, never handled per request. A login that fails at
  request time is an ``UpstreamError``.
- ``InternalServerError``: a broken internal invariant (for example a mapping without a
  Telegram file id). The global handler logs the full message at ERROR and returns a
  generic 500.
"""

from __future__ import annotations


class KvaultError(Exception):
    """Base class for kvault errors."""


class MappingNotFoundError(KvaultError, LookupError):
    """Raised when no mapping exists for a logical path."""

    def __init__(self, path: str) -> None:
        super().__init__(f"No mapping found for path: {path}")
        self.path = path


class UpstreamError(KvaultError):
    """Raised when a primary- or secondary-store call fails."""

    def __init__(self, store: str, message: str, status: int | None = None) -> None:
        super().__init__(f"{store}: {message}")
        self.store = store
        self.status = status


class StoreConfigurationError(KvaultError):
    """Raised when a store client is constructed without the settings it needs."""


class InternalServerError(KvaultError):
    """Raised when kvault code breaks one of its own invariants.

    Details stay in the server log; clients get a generic 500.
    """
