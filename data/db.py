# /data/db.py

"""
Dungeon Crawler Database Interface

Embedded SQLite engine for the save store:
- Save-slot schema (saves, players, items, game_progress, settings)
- Foreign key constraint enforcement on every connection
- Idempotent schema application and light column migrations
- Whole-database binary image export and restore
"""

from __future__ import annotations

import sqlite3
from typing import Dict, Optional

from game_controller.log_config import get_system_logger

logger = get_system_logger('database')

SLOT_COUNT = 3
DEFAULT_PLAYER_NAME = "冒険者"
STARTER_ITEM = "potion"
STARTER_ITEM_QTY = 3

SCHEMA = f"""
CREATE TABLE IF NOT EXISTS saves (
  id          INTEGER PRIMARY KEY AUTOINCREMENT,
  slot        INTEGER NOT NULL UNIQUE CHECK (slot BETWEEN 1 AND {SLOT_COUNT}),
  created_at  TEXT    NOT NULL DEFAULT (datetime('now')),
  updated_at  TEXT    NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS players (
  id      INTEGER PRIMARY KEY AUTOINCREMENT,
  save_id INTEGER NOT NULL UNIQUE REFERENCES saves(id) ON DELETE CASCADE,
  name    TEXT    NOT NULL DEFAULT '{DEFAULT_PLAYER_NAME}',
  level   INTEGER NOT NULL DEFAULT 1   CHECK (level >= 1),
  exp     INTEGER NOT NULL DEFAULT 0   CHECK (exp   >= 0),
  hp      INTEGER NOT NULL DEFAULT 100 CHECK (hp    >= 0),
  gold    INTEGER NOT NULL DEFAULT 0   CHECK (gold  >= 0),
  steps   INTEGER NOT NULL DEFAULT 0   CHECK (steps >= 0)
);

CREATE TABLE IF NOT EXISTS items (
  id        INTEGER PRIMARY KEY AUTOINCREMENT,
  save_id   INTEGER NOT NULL REFERENCES saves(id) ON DELETE CASCADE,
  item_type TEXT    NOT NULL,
  quantity  INTEGER NOT NULL DEFAULT 0 CHECK (quantity >= 0),
  UNIQUE (save_id, item_type)
);

CREATE TABLE IF NOT EXISTS game_progress (
  id                     INTEGER PRIMARY KEY AUTOINCREMENT,
  save_id                INTEGER NOT NULL UNIQUE REFERENCES saves(id) ON DELETE CASCADE,
  floor                  INTEGER NOT NULL DEFAULT 0 CHECK (floor >= 0),
  player_x               INTEGER NOT NULL DEFAULT 1,
  player_y               INTEGER NOT NULL DEFAULT 1,
  player_dir             TEXT    NOT NULL DEFAULT 'N' CHECK (player_dir IN ('N','S','E','W')),
  boss_defeated          INTEGER NOT NULL DEFAULT 0 CHECK (boss_defeated IN (0, 1)),
  built_bases            TEXT    NOT NULL DEFAULT '[]',
  opened_chests          TEXT    NOT NULL DEFAULT '[]',
  last_rested_base_x     INTEGER,
  last_rested_base_y     INTEGER,
  last_rested_base_floor INTEGER CHECK (last_rested_base_floor >= 0),
  CHECK (
    (last_rested_base_x IS NULL AND last_rested_base_y IS NULL AND last_rested_base_floor IS NULL)
    OR
    (last_rested_base_x IS NOT NULL AND last_rested_base_y IS NOT NULL AND last_rested_base_floor IS NOT NULL)
  )
);

CREATE TABLE IF NOT EXISTS settings (
  id      INTEGER PRIMARY KEY AUTOINCREMENT,
  save_id INTEGER NOT NULL REFERENCES saves(id) ON DELETE CASCADE,
  key     TEXT    NOT NULL,
  value   TEXT,
  UNIQUE (save_id, key)
);
"""


def _apply_pragmas(conn: sqlite3.Connection) -> None:
    # foreign_keys is per-connection state and is not part of the serialized image
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.execute("PRAGMA temp_store = MEMORY;")


def open_memory_connection() -> sqlite3.Connection:
    """Open a fresh, empty in-memory database with the store's pragmas."""
    conn = sqlite3.connect(":memory:")
    _apply_pragmas(conn)
    return conn


def apply_schema(conn: sqlite3.Connection) -> None:
    """
    Create the save tables if absent and bring older images up to date.
    Idempotent; safe on both fresh and restored databases.
    """
    _apply_pragmas(conn)
    conn.executescript(SCHEMA)
    conn.commit()

    # Keep compatibility with images written before these columns existed
    _ensure_opened_chests_column(conn)


def _table_columns(conn: sqlite3.Connection, table: str) -> Dict[str, str]:
    cols: Dict[str, str] = {}
    for r in conn.execute(f"PRAGMA table_info({table});").fetchall():
        cols[str(r[1])] = str(r[2]) if r[2] is not None else ""
    return cols


def _ensure_opened_chests_column(conn: sqlite3.Connection) -> None:
    """Add opened_chests to game_progress for snapshots that predate it."""
    columns = _table_columns(conn, "game_progress")
    if "opened_chests" not in columns:
        logger.info("Adding opened_chests column to game_progress table")
        conn.execute("ALTER TABLE game_progress ADD COLUMN opened_chests TEXT NOT NULL DEFAULT '[]';")
        conn.commit()


def export_image(conn: sqlite3.Connection) -> bytes:
    """Serialize the whole main database to its on-disk byte layout."""
    return conn.serialize()


def restore_image(data: bytes) -> sqlite3.Connection:
    """
    Load a serialized image into a new in-memory connection.

    Raises sqlite3.DatabaseError if the bytes are not a readable SQLite image.
    """
    conn = sqlite3.connect(":memory:")
    try:
        conn.deserialize(data)
        # deserialize() is lazy; force a read so corruption surfaces here
        conn.execute("SELECT count(*) FROM sqlite_master;").fetchone()
        integrity: Optional[tuple] = conn.execute("PRAGMA quick_check;").fetchone()
        if not integrity or integrity[0] != "ok":
            raise sqlite3.DatabaseError(f"snapshot failed integrity check: {integrity[0] if integrity else None}")
    except Exception:
        conn.close()
        raise
    _apply_pragmas(conn)
    return conn
