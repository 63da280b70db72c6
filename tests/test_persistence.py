"""Snapshot Persistence Tests

Checks the whole-database snapshot protocol end to end.
• Every write refreshes the snapshot under the configured key
• open() restores a previous session's data
• Storage failures never reach the caller
• Corrupt snapshots follow the configured policy
"""

import asyncio
import base64
import sqlite3

import pytest

from game_controller.config import Config
from save.errors import SnapshotDecodeError, StorageQuotaExceeded
from save.models import LastRestedBase
from save.save_manager import SaveManager
from save.serializers import decode_snapshot, encode_snapshot
from save.storage import FileKeyValueStore, MemoryKeyValueStore


class FailingStore(MemoryKeyValueStore):
    """Reads fine, refuses every write."""

    def write(self, key, value):
        raise StorageQuotaExceeded("simulated quota exceeded")


def _open(storage, **cfg):
    return asyncio.run(SaveManager.open(storage, Config(**cfg)))


def test_every_write_persists_snapshot(persisted_store, kv):
    assert kv.read("dungeon-crawler-db") is None
    persisted_store.create_save(1)
    first = kv.read("dungeon-crawler-db")
    assert first

    persisted_store.update_player(1, {"gold": 10})
    second = kv.read("dungeon-crawler-db")
    assert second and second != first


def test_reads_do_not_persist(persisted_store, kv):
    persisted_store.create_save(1)
    kv.delete("dungeon-crawler-db")
    persisted_store.get_player(1)
    persisted_store.list_saves()
    persisted_store.load_full(1)
    assert kv.read("dungeon-crawler-db") is None


def test_open_starts_empty_and_persists(kv):
    store = _open(kv)
    try:
        assert store.list_saves() == []
        assert kv.read("dungeon-crawler-db")
    finally:
        store.close()


def test_open_restores_previous_session(kv):
    store = _open(kv)
    store.create_save(2)
    store.update_player(2, {"name": "Rin", "level": 4})
    store.update_progress(2, {"floor": 3, "last_rested_base": {"x": 1, "y": 2, "floor": 3}})
    store.set_setting(2, "bgm_volume", "30")
    store.close()

    reopened = _open(kv)
    try:
        loaded = reopened.load_full(2)
        assert loaded.player.name == "Rin"
        assert loaded.player.level == 4
        assert loaded.progress.last_rested_base == LastRestedBase(1, 2, 3)
        assert reopened.get_setting(2, "bgm_volume") == "30"

        # foreign keys must still cascade on the restored engine
        reopened.delete_save(2)
        conn = reopened._require_conn()
        assert conn.execute("SELECT COUNT(*) FROM settings").fetchone()[0] == 0
    finally:
        reopened.close()


def test_open_uses_configured_key(kv):
    store = _open(kv, storage_key="slot-db")
    store.create_save(1)
    store.close()
    assert kv.read("slot-db")
    assert kv.read("dungeon-crawler-db") is None


def test_file_store_survives_restart(tmp_path):
    store = _open(FileKeyValueStore(tmp_path))
    store.create_save(1)
    store.set_item(1, "key", 1)
    store.close()

    reopened = _open(FileKeyValueStore(tmp_path))
    try:
        assert {i.item_type for i in reopened.get_items(1)} == {"potion", "key"}
    finally:
        reopened.close()


def test_write_failure_is_swallowed():
    store = SaveManager.open_with(sqlite3.connect(":memory:"), storage=FailingStore())
    try:
        store.create_save(1)
        store.update_player(1, {"level": 3})
        assert store.get_player(1).level == 3
        assert isinstance(store.last_persist_error, StorageQuotaExceeded)
        assert store.persist() is False
    finally:
        store.close()


def test_quota_store_recovers_after_failure():
    kv = MemoryKeyValueStore(quota_bytes=10)
    store = SaveManager.open_with(sqlite3.connect(":memory:"), storage=kv)
    try:
        store.create_save(1)
        assert store.last_persist_error is not None
        kv.quota_bytes = None
        store.set_item(1, "key", 1)
        assert store.last_persist_error is None
        assert kv.read("dungeon-crawler-db")
    finally:
        store.close()


def test_open_tolerates_failing_storage_writes():
    store = _open(FailingStore())
    try:
        store.create_save(1)
        assert store.get_player(1) is not None
    finally:
        store.close()


def test_corrupt_snapshot_resets_by_default(kv, caplog):
    kv.write("dungeon-crawler-db", "not base64 at all!!")
    store = _open(kv)
    try:
        assert store.list_saves() == []
        assert kv.read("dungeon-crawler-db.corrupt") == "not base64 at all!!"
        # a fresh, valid snapshot replaces the corrupt one
        decode_snapshot(kv.read("dungeon-crawler-db"))
    finally:
        store.close()
    assert any("unreadable" in r.getMessage() for r in caplog.records)


def test_non_database_snapshot_resets(kv):
    kv.write("dungeon-crawler-db", base64.b64encode(b"definitely not sqlite" * 64).decode("ascii"))
    store = _open(kv)
    try:
        store.create_save(1)
        assert [s.slot for s in store.list_saves()] == [1]
    finally:
        store.close()


def test_corrupt_snapshot_raise_policy(kv):
    kv.write("dungeon-crawler-db", base64.b64encode(b"garbage" * 200).decode("ascii"))
    with pytest.raises(SnapshotDecodeError):
        _open(kv, on_corrupt_snapshot="raise")

    kv.write("dungeon-crawler-db", "%%%")
    with pytest.raises(SnapshotDecodeError):
        _open(kv, on_corrupt_snapshot="raise")


class UndecodableStore(MemoryKeyValueStore):
    """A store whose backing bytes are not valid UTF-8."""

    def read(self, key):
        if key == "dungeon-crawler-db":
            raise UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")
        return super().read(key)


def test_non_utf8_snapshot_file_resets(tmp_path):
    raw = b"U1FM\xff\xfe\x00garbage"
    (tmp_path / "dungeon-crawler-db.kv").write_bytes(raw)
    kv = FileKeyValueStore(tmp_path)
    store = _open(kv)
    try:
        assert store.list_saves() == []
        store.create_save(1)
    finally:
        store.close()
    assert (tmp_path / "dungeon-crawler-db.corrupt.kv").read_bytes() == raw

    reopened = _open(FileKeyValueStore(tmp_path))
    try:
        assert [s.slot for s in reopened.list_saves()] == [1]
    finally:
        reopened.close()


def test_non_utf8_snapshot_file_raise_policy(tmp_path):
    (tmp_path / "dungeon-crawler-db.kv").write_bytes(b"U1FM\xff\xfe\x00garbage")
    with pytest.raises(SnapshotDecodeError):
        _open(FileKeyValueStore(tmp_path), on_corrupt_snapshot="raise")


def test_store_read_decode_error_is_treated_as_corrupt():
    kv = UndecodableStore()
    store = _open(kv)
    try:
        assert store.list_saves() == []
    finally:
        store.close()
    assert kv.read("dungeon-crawler-db.corrupt") is None

    with pytest.raises(SnapshotDecodeError):
        _open(UndecodableStore(), on_corrupt_snapshot="raise")


def test_snapshot_predating_opened_chests_is_migrated(kv):
    conn = sqlite3.connect(":memory:")
    conn.executescript(
        """
        CREATE TABLE saves (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          slot INTEGER NOT NULL UNIQUE CHECK (slot BETWEEN 1 AND 3),
          created_at TEXT NOT NULL DEFAULT (datetime('now')),
          updated_at TEXT NOT NULL DEFAULT (datetime('now'))
        );
        CREATE TABLE game_progress (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          save_id INTEGER NOT NULL UNIQUE REFERENCES saves(id) ON DELETE CASCADE,
          floor INTEGER NOT NULL DEFAULT 0 CHECK (floor >= 0),
          player_x INTEGER NOT NULL DEFAULT 1,
          player_y INTEGER NOT NULL DEFAULT 1,
          player_dir TEXT NOT NULL DEFAULT 'N' CHECK (player_dir IN ('N','S','E','W')),
          boss_defeated INTEGER NOT NULL DEFAULT 0 CHECK (boss_defeated IN (0, 1)),
          built_bases TEXT NOT NULL DEFAULT '[]',
          last_rested_base_x INTEGER,
          last_rested_base_y INTEGER,
          last_rested_base_floor INTEGER
        );
        """
    )
    kv.write("dungeon-crawler-db", encode_snapshot(conn.serialize()))
    conn.close()

    store = _open(kv)
    try:
        store.create_save(1)
        store.update_progress(1, {"opened_chests": ["0:8,1"]})
        assert store.get_progress(1).opened_chests == ["0:8,1"]
    finally:
        store.close()
