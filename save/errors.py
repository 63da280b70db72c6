# /save/errors.py

from __future__ import annotations


class StoreClosedError(RuntimeError):
    """Raised when an operation is attempted on a closed SaveManager."""


class SnapshotDecodeError(ValueError):
    """The persisted snapshot string could not be turned back into a database."""


class StorageQuotaExceeded(OSError):
    """A key-value write would exceed the store's size budget."""
