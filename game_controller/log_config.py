# /game_controller/log_config.py
"""
Dungeon Crawler Logging Configuration

Organizes different types of log messages into appropriate files:
- game_debug.log: Save slots, player/progress writes, legacy migration
- system_debug.log: Database, snapshot storage, config and startup messages
- error.log: Errors and exceptions
- warning.log: Warning messages
"""

from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path


class DungeonLogConfig:
    """Centralized logging configuration for the save store"""

    def __init__(self, logs_dir: Path):
        self.logs_dir = Path(logs_dir)
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        self._configured = False
        self._handlers: list[logging.Handler] = []

    def setup_logging(self) -> None:
        """Set up all log handlers and loggers"""
        if self._configured:
            return

        formatter = logging.Formatter(
            '%(asctime)s %(levelname)s %(name)s: %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        root_logger = logging.getLogger()
        root_logger.setLevel(logging.DEBUG)

        self._setup_game_logging(formatter)
        self._setup_system_logging(formatter)
        self._setup_error_logging(formatter)
        self._setup_warning_logging(formatter)

        self._configured = True

    def teardown(self) -> None:
        """Detach and close every handler this config installed."""
        for handler in self._handlers:
            for name in ('', 'game', 'system'):
                logging.getLogger(name).removeHandler(handler)
            handler.close()
        self._handlers.clear()
        self._configured = False

    def _create_rotating_handler(self, filename: str, formatter: logging.Formatter,
                                 level: int = logging.DEBUG) -> logging.handlers.RotatingFileHandler:
        """Create a rotating file handler"""
        handler = logging.handlers.RotatingFileHandler(
            self.logs_dir / filename,
            maxBytes=5_000_000,  # 5MB
            backupCount=3,
            encoding='utf-8'
        )
        handler.setLevel(level)
        handler.setFormatter(formatter)
        self._handlers.append(handler)
        return handler

    def _setup_game_logging(self, formatter: logging.Formatter) -> None:
        """Set up save-slot and migration logging"""
        game_logger = logging.getLogger('game')
        game_logger.setLevel(logging.DEBUG)
        game_logger.addHandler(self._create_rotating_handler('game_debug.log', formatter))

    def _setup_system_logging(self, formatter: logging.Formatter) -> None:
        """Set up system-level logging"""
        system_logger = logging.getLogger('system')
        system_logger.setLevel(logging.DEBUG)
        system_logger.addHandler(self._create_rotating_handler('system_debug.log', formatter))

    def _setup_error_logging(self, formatter: logging.Formatter) -> None:
        error_handler = self._create_rotating_handler('error.log', formatter, logging.ERROR)

        class ErrorFilter(logging.Filter):
            def filter(self, record):
                return record.levelno >= logging.ERROR

        error_handler.addFilter(ErrorFilter())
        # Root logger so errors from every category land here
        logging.getLogger().addHandler(error_handler)

    def _setup_warning_logging(self, formatter: logging.Formatter) -> None:
        warning_handler = self._create_rotating_handler('warning.log', formatter, logging.WARNING)

        class WarningFilter(logging.Filter):
            def filter(self, record):
                return record.levelno == logging.WARNING

        warning_handler.addFilter(WarningFilter())
        logging.getLogger().addHandler(warning_handler)


def setup_dungeon_logging(logs_dir: Path) -> DungeonLogConfig:
    """Set up categorized file logging for the save store"""
    config = DungeonLogConfig(logs_dir)
    config.setup_logging()
    return config


def get_game_logger(name: str = 'game') -> logging.Logger:
    """Get a logger for save-slot and gameplay data components"""
    return logging.getLogger(f'game.{name}' if not name.startswith('game') else name)


def get_system_logger(name: str = 'system') -> logging.Logger:
    """Get a logger for system components"""
    return logging.getLogger(f'system.{name}' if not name.startswith('system') else name)
