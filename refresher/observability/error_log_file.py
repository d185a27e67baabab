"""Error log file handler for capturing refresh errors and warnings to a file.

Per-artifact failures, scan failures, and lock problems are logged at
WARNING or above, so the rotating file doubles as an audit trail of every
artifact that did not get a fresh URL.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING

from refresher.config import _find_repo_root

if TYPE_CHECKING:
    from refresher.config import RefresherConfig


_error_file_handler: RotatingFileHandler | None = None


def resolve_log_path(log_path: str) -> Path:
    """Resolve a configured log path; relative paths hang off the repo root."""
    log_file = Path(log_path).expanduser()
    if not log_file.is_absolute():
        log_file = _find_repo_root(start=Path(__file__)) / log_file
    return log_file.resolve()


def setup_error_log_file(config: "RefresherConfig") -> RotatingFileHandler | None:
    """Setup error log file handler based on configuration.

    Safe to call more than once; later calls return the existing handler.

    Args:
        config: Application configuration with error log settings.

    Returns:
        The configured RotatingFileHandler, or None if disabled or the file
        cannot be created.
    """
    global _error_file_handler

    if not config.error_log_file_enabled:
        return None

    if _error_file_handler is not None:
        return _error_file_handler

    log_level_str = config.error_log_level.upper()
    log_level = getattr(logging, log_level_str, logging.WARNING)
    log_file = resolve_log_path(config.error_log_file_path)

    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        # Logging is not set up yet, so stderr is the only channel.
        print(f"Warning: Cannot create error log directory {log_file.parent}: {e}", file=sys.stderr)
        return None

    try:
        handler = RotatingFileHandler(
            filename=str(log_file),
            maxBytes=config.error_log_max_bytes,
            backupCount=config.error_log_backup_count,
            encoding="utf-8",
        )
    except OSError as e:
        print(f"Warning: Cannot create error log file {log_file}: {e}", file=sys.stderr)
        return None

    handler.setLevel(log_level)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    # Records from refresher.* propagate to the root logger.
    logging.getLogger().addHandler(handler)
    _error_file_handler = handler

    logging.getLogger(__name__).info(
        "Error log file handler initialized: %s (level=%s)", log_file, log_level_str
    )
    return handler


def get_error_log_handler() -> RotatingFileHandler | None:
    return _error_file_handler


def close_error_log_file() -> None:
    """Detach and close the handler installed by setup_error_log_file."""
    global _error_file_handler

    if _error_file_handler is None:
        return
    logging.getLogger().removeHandler(_error_file_handler)
    _error_file_handler.close()
    _error_file_handler = None
