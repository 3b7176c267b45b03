"""System logger for operational events.

Singleton logger for everything that is not part of the auth audit trail
(key material creation, discovery fetch failures, cache refreshes).

Logging strategy:
- Console (stderr): INFO and above
- File (system.jsonl): WARNING and above, once configure_system_logger_file()
  has been called with the configured log directory
"""

from __future__ import annotations

__all__ = [
    "configure_system_logger_file",
    "get_system_logger",
    "set_system_log_level",
]

import logging
import sys
from pathlib import Path

from oidc_auth.constants import APP_NAME
from oidc_auth.telemetry.formatting import ConsoleFormatter, ISO8601Formatter

_system_logger: logging.Logger | None = None
_file_handler_configured: bool = False


def get_system_logger() -> logging.Logger:
    """Get the singleton system logger instance.

    Created on first call with a stderr handler only.

    Example:
        >>> logger = get_system_logger()
        >>> logger.warning({"event": "jwks_fetch_failed", "message": "..."})
    """
    global _system_logger

    if _system_logger is not None:
        return _system_logger

    _system_logger = logging.getLogger(f"{APP_NAME}.system")
    _system_logger.setLevel(logging.INFO)
    _system_logger.propagate = False

    for handler in _system_logger.handlers:
        handler.close()
    _system_logger.handlers.clear()

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.INFO)
    stderr_handler.setFormatter(ConsoleFormatter())
    _system_logger.addHandler(stderr_handler)

    return _system_logger


def configure_system_logger_file(log_path: Path) -> None:
    """Add the JSONL file handler (WARNING and above). Only the first call has effect.

    Args:
        log_path: Path to system.jsonl.
    """
    global _file_handler_configured

    if _file_handler_configured:
        return

    logger = get_system_logger()

    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        if sys.platform != "win32":
            log_path.parent.chmod(0o700)
    except OSError as e:
        logger.warning({"event": "log_dir_unavailable", "message": f"Cannot prepare {log_path.parent}: {e}"})
        return

    file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    file_handler.setLevel(logging.WARNING)
    file_handler.setFormatter(ISO8601Formatter())
    logger.addHandler(file_handler)

    _file_handler_configured = True


def set_system_log_level(level: str) -> None:
    """Set the system logger level ("DEBUG" or "INFO")."""
    logger = get_system_logger()
    logger.setLevel(level)
    for handler in logger.handlers:
        if not isinstance(handler, logging.FileHandler):
            handler.setLevel(level)
