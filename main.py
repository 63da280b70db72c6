# /main.py
"""
Dungeon Crawler Save Store - Startup Entry Point

Brings the persistence layer up the way the game shell does on launch:
sets up logging, loads configuration, opens the save store from its durable
snapshot, imports any legacy flat save, and reports the occupied slots.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Optional

from game_controller import config as config_module
from game_controller.config import Config
from game_controller.log_config import setup_dungeon_logging, get_system_logger
from game_controller.logging import install_global_excepthook, setup_from_config
from save.legacy import migrate_legacy
from save.paths import get_logs_dir, get_storage_dir
from save.save_manager import SaveManager
from save.storage import FileKeyValueStore, KeyValueStore

logger = get_system_logger('startup')


async def bootstrap(cfg: Optional[Config] = None, storage: Optional[KeyValueStore] = None) -> SaveManager:
    """
    Open the save store and run the one-shot legacy import.
    The caller owns the returned store and must close() it.
    """
    cfg = cfg or config_module.load()
    if storage is None:
        storage = FileKeyValueStore(cfg.storage_dir or get_storage_dir())

    store = await SaveManager.open(storage, cfg)
    try:
        if migrate_legacy(store, storage, cfg.legacy_key):
            logger.info("Legacy save imported into slot 1")
    except Exception:
        store.close()
        raise
    return store


def main() -> int:
    cfg = config_module.load()

    try:
        setup_dungeon_logging(get_logs_dir())
    except Exception as e:
        # Fall back to console-only logging if the log directory is unusable
        logging.basicConfig(level=logging.WARNING)
        logging.getLogger(__name__).warning("File logging unavailable: %s", e)
    setup_from_config(cfg)
    install_global_excepthook()
    logger.info("Save store logging initialized")

    store = asyncio.run(bootstrap(cfg))
    try:
        saves = store.list_saves()
        if not saves:
            logger.info("No save slots in use")
        for s in saves:
            logger.info("Slot %d: %s Lv.%d (updated %s)", s.slot, s.name, s.level, s.updated_at)
    finally:
        store.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
