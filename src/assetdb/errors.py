"""Exception types raised by the assetdb persistence core.

Configuration errors (:class:`SchemaError` and its subclasses) are fatal and
abort manager start-up.  Connection errors surface synchronously from the
connection manager.  Write errors are reported through the
:class:`~assetdb.manager.WriteTask` of the failed write and never stop the
writer.  Lookup errors are raised by the read path.
"""

from __future__ import annotations

__all__ = [
    "AssetConnectionError",
    "AssetDatabaseError",
    "AssetLookupTimeout",
    "AssetNotFoundError",
    "AssetWriteError",
    "ConnectionStateError",
    "DuplicateAssetError",
    "RegistryError",
    "SchemaError",
    "UnknownVariantError",
    "WriteCancelledError",
    "WriteQueueFullError",
]


class AssetDatabaseError(RuntimeError):
    """Base class for every error raised by assetdb."""


class SchemaError(AssetDatabaseError):
    """Raised when a descriptor cannot be mapped onto a table schema."""


class RegistryError(SchemaError):
    """Raised when a registered descriptor variant is unusable."""


class UnknownVariantError(SchemaError):
    """Raised when a descriptor variant is not managed by a registry."""


class AssetConnectionError(AssetDatabaseError):
    """Raised when the database cannot be reached."""


class ConnectionStateError(AssetDatabaseError):
    """Raised when a connection operation is invalid in the current state."""


class AssetWriteError(AssetDatabaseError):
    """Raised (through a write task) when a single write fails."""


class DuplicateAssetError(AssetWriteError):
    """Raised when a write violates a uniqueness constraint such as ``path``."""


class WriteCancelledError(AssetWriteError):
    """Raised when a pending write is discarded during shutdown."""


class WriteQueueFullError(AssetWriteError):
    """Raised when the bounded write queue cannot accept another write."""


class AssetNotFoundError(AssetDatabaseError):
    """Raised when fewer assets match a lookup than were requested."""

    def __init__(self, message: str, *, requested: int = 1, found: int = 0) -> None:
        super().__init__(message)
        self.requested = requested
        self.found = found


class AssetLookupTimeout(AssetDatabaseError):
    """Raised when a lookup gives up waiting for the tables to become ready."""
