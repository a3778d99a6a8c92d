"""
Logging for Anoncord.

All relay loggers are children of one ``anoncord`` logger. It is configured
once, on the first ``get_logger`` call, with two handlers:

- console output through prompt_toolkit, coloured by level when stderr is a
  terminal, at ``ANONCORD_LOG_LEVEL`` (INFO by default);
- a size-rotated session file under ``logs/`` that records everything.
"""

import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

from prompt_toolkit import print_formatted_text
from prompt_toolkit.formatted_text import ANSI

ROOT_LOGGER_NAME = "anoncord"
LOGS_DIR: Path = (Path(__file__).parents[3] / "logs").resolve()

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_MAX_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 3

LEVEL_COLORS = {
    logging.DEBUG: "\033[36m",
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[1;31m",
}
RESET_COLOR = "\033[0m"

# discord.py and its transport log every gateway event at INFO
THIRD_PARTY_LOGGERS = ("discord", "aiohttp", "websockets")


class LevelColorFormatter(logging.Formatter):
    """Formatter that wraps each line in the colour of its level."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        color = LEVEL_COLORS.get(record.levelno)
        return f"{color}{line}{RESET_COLOR}" if color else line


class PromptToolkitHandler(logging.Handler):
    """Console handler that prints through prompt_toolkit so an open prompt is redrawn, not torn."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            print_formatted_text(ANSI(self.format(record)))
        except Exception:
            self.handleError(record)


def should_use_color() -> bool:
    try:
        return sys.stderr.isatty()
    except Exception:
        return False


def console_level() -> int:
    """Console threshold from ``ANONCORD_LOG_LEVEL``; unknown names fall back to INFO."""
    level = logging.getLevelName(os.getenv("ANONCORD_LOG_LEVEL", "INFO").strip().upper())
    return level if isinstance(level, int) else logging.INFO


def session_log_path(logs_dir: Path = LOGS_DIR) -> Path:
    logs_dir.mkdir(parents=True, exist_ok=True)
    return logs_dir / f"anoncord-{datetime.now():%Y%m%d-%H%M%S}.log"


def configure_logging(logs_dir: Path = LOGS_DIR) -> logging.Logger:
    """
    Attach the console and file handlers to the ``anoncord`` logger.

    Safe to call repeatedly; only the first call adds handlers. Returns the
    root relay logger.
    """
    root = logging.getLogger(ROOT_LOGGER_NAME)
    if root.handlers:
        return root

    root.setLevel(logging.DEBUG)
    root.propagate = False

    console = PromptToolkitHandler()
    console.setLevel(console_level())
    console_format = LevelColorFormatter if should_use_color() else logging.Formatter
    console.setFormatter(console_format(LOG_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(console)

    log_file = RotatingFileHandler(
        session_log_path(logs_dir),
        maxBytes=LOG_MAX_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    log_file.setLevel(logging.DEBUG)
    log_file.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(log_file)

    for name in THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root


def get_logger(name: str) -> logging.Logger:
    """Return ``anoncord.<name>``, configuring relay logging on first use."""
    return configure_logging().getChild(name)


def handle_exception(exception_type, exception_instance, exception_traceback) -> None:
    """``sys.excepthook`` that logs uncaught exceptions; Ctrl+C keeps the default behaviour."""
    if issubclass(exception_type, KeyboardInterrupt):
        sys.__excepthook__(exception_type, exception_instance, exception_traceback)
        return
    logging.getLogger(ROOT_LOGGER_NAME).critical(
        "Uncaught exception",
        exc_info=(exception_type, exception_instance, exception_traceback),
    )
