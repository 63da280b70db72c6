# /save/save_manager.py

"""
Dungeon Crawler Save Store

Slot-addressed save game persistence:
- Save slots 1-3 with player, inventory, progress and settings rows
- Upserts and partial-field updates; cascade delete per slot
- Whole-database snapshot written to a durable key-value store after every write
- Snapshot restore on open(), with a configurable policy for corrupt images

Callers only ever see slot numbers and the value records in save.models.
"""

from __future__ import annotations

import asyncio
import sqlite3
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

from data.db import (
    STARTER_ITEM,
    STARTER_ITEM_QTY,
    apply_schema,
    export_image,
    open_memory_connection,
    restore_image,
)
from game_controller.config import Config
from game_controller.log_config import get_game_logger, get_system_logger
from .errors import SnapshotDecodeError, StoreClosedError
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
from .serializers import decode_snapshot, dump_tags, encode_snapshot, load_tags
from .storage import KeyValueStore

logger = get_game_logger('saves')
storage_logger = get_system_logger('storage')

PLAYER_FIELDS = ("name", "level", "exp", "hp", "gold", "steps")
PROGRESS_FIELDS = (
    "floor", "player_x", "player_y", "player_dir", "boss_defeated",
    "built_bases", "opened_chests", "last_rested_base",
)


def _player_assignments(data: Mapping[str, Any]) -> Tuple[List[str], List[Any]]:
    fields: List[str] = []
    values: List[Any] = []
    for name in PLAYER_FIELDS:
        if name in data:
            fields.append(f"{name} = ?")
            values.append(data[name])
    return fields, values


def _progress_assignments(data: Mapping[str, Any]) -> Tuple[List[str], List[Any]]:
    fields: List[str] = []
    values: List[Any] = []

    for name in ("floor", "player_x", "player_y", "player_dir"):
        if name in data:
            fields.append(f"{name} = ?")
            values.append(data[name])
    if "boss_defeated" in data:
        fields.append("boss_defeated = ?")
        values.append(1 if data["boss_defeated"] else 0)
    for name in ("built_bases", "opened_chests"):
        if name in data:
            fields.append(f"{name} = ?")
            values.append(dump_tags(data[name]))
    if "last_rested_base" in data:
        # The three columns always move together
        base = data["last_rested_base"]
        if base is None:
            fields.append("last_rested_base_x = NULL, last_rested_base_y = NULL, last_rested_base_floor = NULL")
        else:
            lrb = LastRestedBase.coerce(base)
            fields.append("last_rested_base_x = ?, last_rested_base_y = ?, last_rested_base_floor = ?")
            values.extend((lrb.x, lrb.y, lrb.floor))
    return fields, values


def _partial(data: Union[Mapping[str, Any], PlayerRow, GameProgressRow, None], extra: Mapping[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = {}
    if data is not None:
        if isinstance(data, (PlayerRow, GameProgressRow)):
            merged.update(data.to_dict())
        else:
            merged.update(data)
    merged.update(extra)
    return merged


class SaveManager:
    """Owner of the save schema and the only writer of the embedded database."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        storage: Optional[KeyValueStore] = None,
        config: Optional[Config] = None,
    ):
        self._conn: Optional[sqlite3.Connection] = conn
        self._conn.row_factory = sqlite3.Row
        self._storage = storage
        self._config = config or Config()
        self.last_persist_error: Optional[Exception] = None

    # ---- lifecycle ---------------------------------------------------------

    @classmethod
    async def open(cls, storage: KeyValueStore, config: Optional[Config] = None) -> "SaveManager":
        """
        Restore the persisted snapshot (if any) and return a ready store.

        A missing snapshot starts an empty database. An unreadable one is
        handled per config.on_corrupt_snapshot: "reset" starts empty and keeps
        the bad payload under "<key>.corrupt"; "raise" raises SnapshotDecodeError.
        """
        cfg = config or Config()
        key = cfg.storage_key

        stored: Optional[str] = None
        conn: Optional[sqlite3.Connection] = None
        try:
            stored = await asyncio.to_thread(storage.read, key)
            if stored is None:
                storage_logger.info("No snapshot at %r, starting empty", key)
            else:
                conn = restore_image(decode_snapshot(stored, cfg.snapshot_chunk_size))
                storage_logger.info("Restored snapshot from %r (%d chars)", key, len(stored))
        except (UnicodeDecodeError, SnapshotDecodeError, sqlite3.DatabaseError) as e:
            if cfg.on_corrupt_snapshot == "raise":
                if isinstance(e, SnapshotDecodeError):
                    raise
                raise SnapshotDecodeError(f"snapshot at {key!r} is unreadable: {e}") from e
            storage_logger.error("Snapshot at %r is unreadable, starting empty: %s", key, e)
            if stored is not None:
                cls._quarantine(storage, key, stored)

        if conn is None:
            conn = open_memory_connection()
        apply_schema(conn)

        store = cls(conn, storage, cfg)
        store.persist()
        return store

    @classmethod
    def open_with(
        cls,
        conn: sqlite3.Connection,
        storage: Optional[KeyValueStore] = None,
        config: Optional[Config] = None,
    ) -> "SaveManager":
        """Apply the schema to a caller-supplied engine; no snapshot restore."""
        apply_schema(conn)
        return cls(conn, storage, config)

    @staticmethod
    def _quarantine(storage: KeyValueStore, key: str, payload: str) -> None:
        try:
            storage.write(f"{key}.corrupt", payload)
        except Exception as e:
            storage_logger.warning("Could not keep corrupt snapshot copy for %r: %s", key, e)

    def close(self) -> None:
        if self._conn is None:
            return
        self._conn.close()
        self._conn = None

    @property
    def closed(self) -> bool:
        return self._conn is None

    def __enter__(self) -> "SaveManager":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _require_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreClosedError("save store is closed")
        return self._conn

    # ---- persistence -------------------------------------------------------

    def persist(self) -> bool:
        """
        Write the whole database to the durable store.
        Failures are logged and reported through the return value and
        last_persist_error; they never propagate.
        """
        conn = self._require_conn()
        if self._storage is None:
            return True
        key = self._config.storage_key
        try:
            encoded = encode_snapshot(export_image(conn), self._config.snapshot_chunk_size)
            self._storage.write(key, encoded)
        except Exception as e:
            self.last_persist_error = e
            storage_logger.warning("Snapshot write to %r failed, in-memory state kept: %s", key, e)
            return False
        self.last_persist_error = None
        storage_logger.debug("Persisted snapshot to %r (%d chars)", key, len(encoded))
        return True

    @contextmanager
    def _mutation(self) -> Iterator[sqlite3.Connection]:
        # One transaction per public write; persisted only after a clean commit
        conn = self._require_conn()
        with conn:
            yield conn
        self.persist()

    # ---- helpers -----------------------------------------------------------

    def _save_id(self, conn: sqlite3.Connection, slot: int) -> Optional[int]:
        row = conn.execute("SELECT id FROM saves WHERE slot = ?", (slot,)).fetchone()
        return int(row["id"]) if row else None

    def _touch(self, conn: sqlite3.Connection, save_id: int) -> None:
        conn.execute("UPDATE saves SET updated_at = datetime('now') WHERE id = ?", (save_id,))

    def _ensure_save(self, conn: sqlite3.Connection, slot: int) -> int:
        conn.execute(
            """
            INSERT INTO saves (slot) VALUES (?)
            ON CONFLICT(slot) DO UPDATE SET updated_at = datetime('now')
            """,
            (slot,),
        )
        save_id = self._save_id(conn, slot)
        if save_id is None:
            raise RuntimeError(f"save slot {slot} vanished after upsert")
        conn.execute("INSERT OR IGNORE INTO players (save_id) VALUES (?)", (save_id,))
        conn.execute("INSERT OR IGNORE INTO game_progress (save_id) VALUES (?)", (save_id,))
        conn.execute(
            """
            INSERT INTO items (save_id, item_type, quantity) VALUES (?, ?, ?)
            ON CONFLICT(save_id, item_type) DO NOTHING
            """,
            (save_id, STARTER_ITEM, STARTER_ITEM_QTY),
        )
        return save_id

    def _upsert_item(self, conn: sqlite3.Connection, save_id: int, item_type: str, quantity: int) -> None:
        conn.execute(
            """
            INSERT INTO items (save_id, item_type, quantity) VALUES (?, ?, ?)
            ON CONFLICT(save_id, item_type) DO UPDATE SET quantity = excluded.quantity
            """,
            (save_id, item_type, quantity),
        )

    def _upsert_setting(self, conn: sqlite3.Connection, save_id: int, key: str, value: Optional[str]) -> None:
        conn.execute(
            """
            INSERT INTO settings (save_id, key, value) VALUES (?, ?, ?)
            ON CONFLICT(save_id, key) DO UPDATE SET value = excluded.value
            """,
            (save_id, key, value),
        )

    def _apply_player(self, conn: sqlite3.Connection, save_id: int, data: Mapping[str, Any]) -> bool:
        fields, values = _player_assignments(data)
        if not fields:
            return False
        conn.execute(f"UPDATE players SET {', '.join(fields)} WHERE save_id = ?", (*values, save_id))
        return True

    def _apply_progress(self, conn: sqlite3.Connection, save_id: int, data: Mapping[str, Any]) -> bool:
        fields, values = _progress_assignments(data)
        if not fields:
            return False
        conn.execute(f"UPDATE game_progress SET {', '.join(fields)} WHERE save_id = ?", (*values, save_id))
        return True

    # ---- save slots --------------------------------------------------------

    def create_save(self, slot: int) -> int:
        """Create slot (or refresh its timestamp) and make sure its child rows exist."""
        with self._mutation() as conn:
            save_id = self._ensure_save(conn, slot)
        logger.info("Save slot %d ready (id=%d)", slot, save_id)
        return save_id

    def delete_save(self, slot: int) -> None:
        with self._mutation() as conn:
            cur = conn.execute("DELETE FROM saves WHERE slot = ?", (slot,))
        if cur.rowcount:
            logger.info("Deleted save slot %d", slot)

    def list_saves(self) -> List[SaveSummary]:
        rows = self._require_conn().execute(
            """
            SELECT s.slot, p.name, p.level, s.updated_at
            FROM saves s
            JOIN players p ON p.save_id = s.id
            ORDER BY s.slot
            """
        ).fetchall()
        return [
            SaveSummary(slot=int(r["slot"]), name=r["name"], level=int(r["level"]), updated_at=r["updated_at"])
            for r in rows
        ]

    # ---- player ------------------------------------------------------------

    def get_player(self, slot: int) -> Optional[PlayerRow]:
        row = self._require_conn().execute(
            """
            SELECT p.name, p.level, p.exp, p.hp, p.gold, p.steps
            FROM players p JOIN saves s ON s.id = p.save_id
            WHERE s.slot = ?
            """,
            (slot,),
        ).fetchone()
        return PlayerRow.from_dict(dict(row)) if row else None

    def update_player(self, slot: int, data: Union[Mapping[str, Any], PlayerRow, None] = None, **fields: Any) -> None:
        """Change only the given player fields. No-op for an unknown slot or empty update."""
        changes = _partial(data, fields)
        ignored = set(changes) - set(PLAYER_FIELDS)
        if ignored:
            logger.debug("update_player ignoring unknown fields: %s", sorted(ignored))
        if not (set(changes) & set(PLAYER_FIELDS)):
            return
        conn = self._require_conn()
        save_id = self._save_id(conn, slot)
        if save_id is None:
            return
        with self._mutation() as conn:
            self._apply_player(conn, save_id, changes)
            self._touch(conn, save_id)

    # ---- items -------------------------------------------------------------

    def get_items(self, slot: int) -> List[ItemRow]:
        rows = self._require_conn().execute(
            """
            SELECT i.item_type, i.quantity
            FROM items i JOIN saves s ON s.id = i.save_id
            WHERE s.slot = ?
            ORDER BY i.id
            """,
            (slot,),
        ).fetchall()
        return [ItemRow(item_type=r["item_type"], quantity=int(r["quantity"])) for r in rows]

    def set_item(self, slot: int, item_type: str, quantity: int) -> None:
        """Insert or overwrite the quantity of one item type."""
        conn = self._require_conn()
        save_id = self._save_id(conn, slot)
        if save_id is None:
            return
        with self._mutation() as conn:
            self._upsert_item(conn, save_id, item_type, quantity)
            self._touch(conn, save_id)

    # ---- progress ----------------------------------------------------------

    def get_progress(self, slot: int) -> Optional[GameProgressRow]:
        row = self._require_conn().execute(
            """
            SELECT g.floor, g.player_x, g.player_y, g.player_dir,
                   g.boss_defeated, g.built_bases, g.opened_chests,
                   g.last_rested_base_x, g.last_rested_base_y, g.last_rested_base_floor
            FROM game_progress g JOIN saves s ON s.id = g.save_id
            WHERE s.slot = ?
            """,
            (slot,),
        ).fetchone()
        if not row:
            return None
        lrb: Optional[LastRestedBase] = None
        if row["last_rested_base_x"] is not None:
            lrb = LastRestedBase(
                x=int(row["last_rested_base_x"]),
                y=int(row["last_rested_base_y"]),
                floor=int(row["last_rested_base_floor"]),
            )
        return GameProgressRow(
            floor=int(row["floor"]),
            player_x=int(row["player_x"]),
            player_y=int(row["player_y"]),
            player_dir=row["player_dir"],
            boss_defeated=int(row["boss_defeated"]) == 1,
            built_bases=load_tags(row["built_bases"]),
            opened_chests=load_tags(row["opened_chests"]),
            last_rested_base=lrb,
        )

    def update_progress(self, slot: int, data: Union[Mapping[str, Any], GameProgressRow, None] = None, **fields: Any) -> None:
        """
        Change only the given progress fields.

        last_rested_base=None clears all three base columns; an {x, y, floor}
        mapping, LastRestedBase or (x, y, floor) triple sets all three.
        """
        changes = _partial(data, fields)
        ignored = set(changes) - set(PROGRESS_FIELDS)
        if ignored:
            logger.debug("update_progress ignoring unknown fields: %s", sorted(ignored))
        if not (set(changes) & set(PROGRESS_FIELDS)):
            return
        conn = self._require_conn()
        save_id = self._save_id(conn, slot)
        if save_id is None:
            return
        with self._mutation() as conn:
            self._apply_progress(conn, save_id, changes)
            self._touch(conn, save_id)

    # ---- settings ----------------------------------------------------------

    def get_setting(self, slot: int, key: str) -> Optional[str]:
        """Value for key, or None when the key is absent or stored as NULL (see has_setting)."""
        row = self._require_conn().execute(
            """
            SELECT st.value
            FROM settings st JOIN saves s ON s.id = st.save_id
            WHERE s.slot = ? AND st.key = ?
            """,
            (slot, key),
        ).fetchone()
        return row["value"] if row else None

    def has_setting(self, slot: int, key: str) -> bool:
        row = self._require_conn().execute(
            """
            SELECT 1
            FROM settings st JOIN saves s ON s.id = st.save_id
            WHERE s.slot = ? AND st.key = ?
            """,
            (slot, key),
        ).fetchone()
        return row is not None

    def get_settings(self, slot: int) -> List[SettingRow]:
        rows = self._require_conn().execute(
            """
            SELECT st.key, st.value
            FROM settings st JOIN saves s ON s.id = st.save_id
            WHERE s.slot = ?
            ORDER BY st.id
            """,
            (slot,),
        ).fetchall()
        return [SettingRow(key=r["key"], value=r["value"]) for r in rows]

    def set_setting(self, slot: int, key: str, value: Optional[str]) -> None:
        conn = self._require_conn()
        save_id = self._save_id(conn, slot)
        if save_id is None:
            return
        with self._mutation() as conn:
            self._upsert_setting(conn, save_id, key, value)
            self._touch(conn, save_id)

    def delete_setting(self, slot: int, key: str) -> None:
        conn = self._require_conn()
        save_id = self._save_id(conn, slot)
        if save_id is None:
            return
        with self._mutation() as conn:
            cur = conn.execute("DELETE FROM settings WHERE save_id = ? AND key = ?", (save_id, key))
            if cur.rowcount:
                self._touch(conn, save_id)

    # ---- full save / load --------------------------------------------------

    def load_full(self, slot: int) -> Optional[FullSaveData]:
        """Everything stored for a slot, or None if the slot does not exist."""
        player = self.get_player(slot)
        progress = self.get_progress(slot)
        if player is None or progress is None:
            return None
        row = self._require_conn().execute("SELECT updated_at FROM saves WHERE slot = ?", (slot,)).fetchone()
        return FullSaveData(
            slot=slot,
            player=player,
            items=self.get_items(slot),
            progress=progress,
            settings=self.get_settings(slot),
            updated_at=row["updated_at"] if row else "",
        )

    def save_full(self, slot: int, bundle: Union[SaveBundle, FullSaveData, Mapping[str, Any]]) -> None:
        """
        Write a whole slot at once: create it if needed, then player, items,
        progress and settings. Runs as a single transaction and persists once;
        items and settings not named in the bundle are left as they are.
        """
        if isinstance(bundle, FullSaveData):
            bundle = bundle.bundle()
        elif not isinstance(bundle, SaveBundle):
            bundle = SaveBundle.from_dict(bundle)

        with self._mutation() as conn:
            save_id = self._ensure_save(conn, slot)
            self._apply_player(conn, save_id, bundle.player.to_dict())
            for item in bundle.items:
                self._upsert_item(conn, save_id, item.item_type, item.quantity)
            self._apply_progress(conn, save_id, bundle.progress.to_dict())
            for setting in bundle.settings:
                self._upsert_setting(conn, save_id, setting.key, setting.value)
            self._touch(conn, save_id)
        logger.info(
            "Saved slot %d (%d items, %d settings)", slot, len(bundle.items), len(bundle.settings)
        )
