# game_controller/logging.py
# Console/file output for the save store, driven by Config.
# - Plain text or JSON lines
# - Size-rotated log file when Config.log_file is set
# - Global excepthook that routes crashes into the system.crash logger

from __future__ import annotations

import json
import logging
import logging.handlers
import sys
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from .config import Config
from .log_config import get_system_logger


__all__ = [
    "LogSetup",
    "PlainFormatter",
    "JsonFormatter",
    "setup",
    "setup_from_config",
    "reset",
    "install_global_excepthook",
]

# Handlers this module put on the root logger; replaced on every setup()
_installed: List[logging.Handler] = []


@dataclass
class LogSetup:
    level: int = logging.INFO
    to_console: bool = True
    log_file: Optional[str] = None
    max_bytes: int = 5_000_000
    backup_count: int = 3
    as_json: bool = False


class PlainFormatter(logging.Formatter):
    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created)
        return dt.strftime("%Y-%m-%d %H:%M:%S") + f".{int(record.msecs):03d}"

    def format(self, record):
        line = f"{self.formatTime(record)} [{record.levelname:<7}] {record.name}: {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class JsonFormatter(logging.Formatter):
    """One JSON object per record: time, level, name, message (+ exc_info)."""

    def format(self, record):
        obj = {
            "time": datetime.fromtimestamp(record.created).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            obj["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(obj, ensure_ascii=False)


def reset() -> None:
    """Detach and close whatever handlers the last setup() installed."""
    root = logging.getLogger()
    while _installed:
        handler = _installed.pop()
        root.removeHandler(handler)
        handler.close()


def setup(opts: LogSetup) -> logging.Logger:
    """
    Install console and/or rotating file output on the root logger.
    Calling it again swaps the previous handlers out instead of stacking them.
    """
    reset()
    root = logging.getLogger()
    root.setLevel(opts.level)
    fmt = JsonFormatter() if opts.as_json else PlainFormatter()

    if opts.to_console:
        _installed.append(logging.StreamHandler(sys.stdout))
    if opts.log_file:
        _installed.append(
            logging.handlers.RotatingFileHandler(
                opts.log_file, maxBytes=opts.max_bytes, backupCount=opts.backup_count, encoding="utf-8"
            )
        )
    for handler in _installed:
        handler.setLevel(opts.level)
        handler.setFormatter(fmt)
        root.addHandler(handler)
    return root


def setup_from_config(cfg: Config, to_console: bool = True) -> logging.Logger:
    level = logging.getLevelNamesMapping().get(cfg.log_level, logging.INFO)
    return setup(
        LogSetup(
            level=level,
            to_console=to_console,
            log_file=cfg.log_file,
            max_bytes=cfg.log_max_bytes,
            backup_count=cfg.log_backup_count,
            as_json=cfg.log_json,
        )
    )


def install_global_excepthook(logger: Optional[logging.Logger] = None) -> None:
    """Log unhandled exceptions instead of only printing them."""
    lg = logger or get_system_logger('crash')

    def _excepthook(exc_type, exc_value, exc_tb):
        lg.critical("Unhandled exception", exc_info=(exc_type, exc_value, exc_tb))

    sys.excepthook = _excepthook
