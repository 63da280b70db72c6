# /save/legacy.py

"""
One-shot import of the pre-database flat save record.

Older builds kept a single JSON object under its own key. On first start it is
mapped onto slot 1 with SaveManager.save_full() and the old key is removed.
"""

from __future__ import annotations

import json
import sqlite3
from typing import Any, Mapping, Optional

from game_controller.log_config import get_game_logger
from .models import GameProgressRow, ItemRow, LastRestedBase, PlayerRow, SaveBundle
from .save_manager import SaveManager
from .storage import KeyValueStore

logger = get_game_logger('migration')

LEGACY_SLOT = 1


def legacy_to_bundle(record: Mapping[str, Any]) -> SaveBundle:
    """Map the flat legacy record onto a SaveBundle. Missing fields take schema defaults."""
    player_defaults = PlayerRow()
    player = PlayerRow(
        name=player_defaults.name,
        level=int(record.get("level", player_defaults.level)),
        exp=int(record.get("exp", player_defaults.exp)),
        hp=int(record.get("hp", player_defaults.hp)),
        gold=int(record.get("gold", player_defaults.gold)),
        steps=int(record.get("steps", player_defaults.steps)),
    )

    progress = GameProgressRow()
    if "floor" in record:
        progress.floor = int(record["floor"])
    pos = record.get("playerPos") or {}
    if "x" in pos:
        progress.player_x = int(pos["x"])
    if "y" in pos:
        progress.player_y = int(pos["y"])
    if record.get("playerDir"):
        progress.player_dir = str(record["playerDir"])
    progress.boss_defeated = bool(record.get("bossDefeated", False))
    progress.built_bases = [str(b) for b in record.get("builtBases") or []]
    lrb = record.get("lastRestedBase")
    progress.last_rested_base = LastRestedBase.coerce(lrb) if lrb else None

    items = []
    if "potions" in record:
        items.append(ItemRow(item_type="potion", quantity=int(record["potions"])))

    return SaveBundle(player=player, items=items, progress=progress, settings=[])


def migrate_legacy(store: SaveManager, storage: KeyValueStore, legacy_key: Optional[str] = None) -> bool:
    """
    Import the legacy record into slot 1 if one is present.
    Returns True when a record was imported (and its key deleted).
    """
    key = legacy_key or "dungeon-crawler-save"
    raw = storage.read(key)
    if raw is None:
        return False

    try:
        record = json.loads(raw)
        if not isinstance(record, dict):
            raise ValueError(f"expected a JSON object, got {type(record).__name__}")
        bundle = legacy_to_bundle(record)
    except (ValueError, TypeError, KeyError) as e:
        # Leave the key alone so a later build can retry
        logger.error("Legacy save at %r is unreadable, not migrating: %s", key, e)
        return False

    try:
        store.save_full(LEGACY_SLOT, bundle)
    except sqlite3.IntegrityError as e:
        # save_full rolled back; keep the record for inspection and start without it
        logger.error("Legacy save at %r has out-of-range values, not migrating: %s", key, e)
        return False
    storage.delete(key)
    logger.info("Migrated legacy save %r into slot %d", key, LEGACY_SLOT)
    return True
