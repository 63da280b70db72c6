# /save/__init__.py

"""
Save slot persistence: store, value records, snapshot codec and key-value backends.
"""

from .errors import SnapshotDecodeError, StorageQuotaExceeded, StoreClosedError
from .models import (
    FullSaveData,
    GameProgressRow,
    ItemRow,
    LastRestedBase,
    PlayerRow,
    SaveBundle,
    SaveSummary,
    SettingRow,
)
from .save_manager import SaveManager
from .storage import FileKeyValueStore, KeyValueStore, MemoryKeyValueStore

__all__ = [
    "SaveManager",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "FileKeyValueStore",
    "PlayerRow",
    "ItemRow",
    "LastRestedBase",
    "GameProgressRow",
    "SettingRow",
    "SaveSummary",
    "SaveBundle",
    "FullSaveData",
    "StoreClosedError",
    "SnapshotDecodeError",
    "StorageQuotaExceeded",
]
