# /save/paths.py

"""
Save Store Path Management

Platform-independent locations for the durable key-value store and logs.
"""

from __future__ import annotations

import hashlib
from pathlib import Path
import os
import platform

APP_FOLDER_NAME = "DungeonCrawler"


def get_data_home() -> Path:
    # Simple cross-platform per-user data locator
    home = Path.home()
    if platform.system() == "Windows":
        base = os.getenv("APPDATA")
        return Path(base) if base else home / "AppData" / "Roaming"
    if platform.system() == "Darwin":
        return home / "Library" / "Application Support"
    xdg = os.getenv("XDG_DATA_HOME", "").strip()
    return Path(xdg) if xdg else home / ".local" / "share"


def get_app_dir() -> Path:
    p = get_data_home() / APP_FOLDER_NAME
    p.mkdir(parents=True, exist_ok=True)
    return p


def get_storage_dir() -> Path:
    p = get_app_dir() / "Storage"
    p.mkdir(parents=True, exist_ok=True)
    return p


def get_logs_dir() -> Path:
    p = get_app_dir() / "Logs"
    p.mkdir(parents=True, exist_ok=True)
    return p


def sanitize_key(key: str) -> str:
    """
    Map a store key to a safe file stem.

    Keys made only of alnum, dash, underscore and dot (not leading) are used
    as-is. Anything else is replaced with underscores and gets a short hash of
    the original key appended, so "a/b" and "a_b" land in different files.
    """
    stripped = key.strip()
    safe = "".join(ch if ch.isalnum() or ch in "-_." else "_" for ch in stripped)
    safe = safe.lstrip(".")
    if safe == key and len(safe) <= 128:
        return safe
    digest = hashlib.sha1(key.encode("utf-8", errors="surrogateescape")).hexdigest()[:8]
    return f"{safe[:119] or '_'}-{digest}"
