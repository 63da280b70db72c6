# /save/storage.py

"""
Durable key-value stores for save snapshots.

The SaveManager only needs three synchronous calls: read, write and delete,
all addressed by a string key and carrying string values.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, Optional, Protocol, Union

from game_controller.log_config import get_system_logger
from .errors import StorageQuotaExceeded
from .paths import sanitize_key

logger = get_system_logger('storage')


class KeyValueStore(Protocol):
    def read(self, key: str) -> Optional[str]: ...

    def write(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


def _utf8_size(text: str) -> int:
    return len(text.encode("utf-8", errors="surrogateescape"))


class MemoryKeyValueStore:
    """Process-local store. With quota_bytes set, writes whose UTF-8 size would exceed it raise StorageQuotaExceeded."""

    def __init__(self, initial: Optional[Dict[str, str]] = None, quota_bytes: Optional[int] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self.quota_bytes = quota_bytes

    def read(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def write(self, key: str, value: str) -> None:
        if self.quota_bytes is not None:
            used = sum(_utf8_size(k) + _utf8_size(v) for k, v in self._data.items() if k != key)
            needed = used + _utf8_size(key) + _utf8_size(value)
            if needed > self.quota_bytes:
                raise StorageQuotaExceeded(
                    f"writing {key!r} needs {needed} bytes, quota is {self.quota_bytes}"
                )
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class FileKeyValueStore:
    """
    One UTF-8 file per key under root; writes go through a temp file and os.replace().

    Undecodable bytes are carried through as surrogate escapes, so a damaged
    file reads back as a (bad) value instead of failing, and writing that
    value again restores the exact bytes.
    """

    SUFFIX = ".kv"
    ENCODING = "utf-8"
    ERRORS = "surrogateescape"

    def __init__(self, root: Union[Path, str]):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        return self.root / (sanitize_key(key) + self.SUFFIX)

    def read(self, key: str) -> Optional[str]:
        p = self._path_for(key)
        if not p.exists():
            return None
        return p.read_bytes().decode(self.ENCODING, errors=self.ERRORS)

    def write(self, key: str, value: str) -> None:
        p = self._path_for(key)
        tmp = p.with_suffix(p.suffix + ".tmp")
        tmp.write_bytes(value.encode(self.ENCODING, errors=self.ERRORS))
        os.replace(tmp, p)
        logger.debug("Wrote %d chars to %s", len(value), p)

    def delete(self, key: str) -> None:
        p = self._path_for(key)
        try:
            p.unlink()
        except FileNotFoundError:
            pass
