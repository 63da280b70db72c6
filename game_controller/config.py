# /game_controller/config.py

# Centralized configuration for the save store. Values are environment-driven,
# with safe defaults. Import and use wherever needed.
#
# Example env:
#   DUNGEON_STORAGE_DIR=/abs/path/to/storage
#   DUNGEON_STORAGE_KEY=dungeon-crawler-db
#   DUNGEON_LEGACY_KEY=dungeon-crawler-save
#   DUNGEON_SNAPSHOT_CHUNK=24576
#   DUNGEON_ON_CORRUPT=reset
#   DUNGEON_LOG_LEVEL=INFO
#   DUNGEON_LOG_FILE=dungeon.log
#   DUNGEON_LOG_JSON=0
#   DUNGEON_LOG_MAX_BYTES=5000000
#   DUNGEON_LOG_BACKUP=3

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .log_config import get_system_logger

__all__ = ["Config", "load", "CORRUPT_POLICIES"]

logger = get_system_logger('config')

CORRUPT_POLICIES = ("reset", "raise")


def _parse_bool(val: str | None, default: bool = False) -> bool:
    if val is None:
        return default
    v = val.strip().lower()
    return v in ("1", "true", "yes", "on")


def _parse_int(env: str, default: int) -> int:
    try:
        return int(os.getenv(env, str(default)))
    except Exception:
        return default


@dataclass(frozen=True)
class Config:
    # Persistence
    storage_dir: Optional[Path] = None  # None means save.paths.get_storage_dir()
    storage_key: str = "dungeon-crawler-db"
    legacy_key: str = "dungeon-crawler-save"
    snapshot_chunk_size: int = 8192 * 3
    on_corrupt_snapshot: str = "reset"

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None
    log_json: bool = False
    log_max_bytes: int = 5_000_000
    log_backup_count: int = 3


def load() -> Config:
    storage_dir_str = os.getenv("DUNGEON_STORAGE_DIR", "").strip()
    storage_dir = Path(storage_dir_str) if storage_dir_str else None

    policy = os.getenv("DUNGEON_ON_CORRUPT", "reset").strip().lower()
    if policy not in CORRUPT_POLICIES:
        logger.warning("Unknown DUNGEON_ON_CORRUPT=%r, using 'reset'", policy)
        policy = "reset"

    return Config(
        storage_dir=storage_dir,
        storage_key=os.getenv("DUNGEON_STORAGE_KEY", "").strip() or "dungeon-crawler-db",
        legacy_key=os.getenv("DUNGEON_LEGACY_KEY", "").strip() or "dungeon-crawler-save",
        snapshot_chunk_size=max(3, _parse_int("DUNGEON_SNAPSHOT_CHUNK", 8192 * 3)),
        on_corrupt_snapshot=policy,
        log_level=os.getenv("DUNGEON_LOG_LEVEL", "INFO").upper(),
        log_file=os.getenv("DUNGEON_LOG_FILE", "").strip() or None,
        log_json=_parse_bool(os.getenv("DUNGEON_LOG_JSON"), False),
        log_max_bytes=max(0, _parse_int("DUNGEON_LOG_MAX_BYTES", 5_000_000)),
        log_backup_count=max(0, _parse_int("DUNGEON_LOG_BACKUP", 3)),
    )
