import sqlite3
import sys
from pathlib import Path

import pytest

# Add the project root to sys.path so tests run from a plain checkout
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from save.save_manager import SaveManager
from save.storage import MemoryKeyValueStore


@pytest.fixture
def kv() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def store():
    s = SaveManager.open_with(sqlite3.connect(":memory:"))
    yield s
    s.close()


@pytest.fixture
def persisted_store(kv):
    s = SaveManager.open_with(sqlite3.connect(":memory:"), storage=kv)
    yield s
    s.close()
