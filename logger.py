"""
logger.py
---------
Structured, application-wide logging configuration.

Design Decisions:
    * A single root logger ("sysdbcopy") is configured once at import time.
    * All modules obtain a child logger via ``get_logger(__name__)``.
    * Optional file handler appends structured lines to a persistent log
      file (path set via LOG_FILE env variable).
    * ``set_console_level`` lets the CLI raise verbosity after start-up
      without re-configuring handlers.
"""
from __future__ import annotations

import logging
import sys
from pathlib import Path

from config import CONFIG, get_log_level

_ROOT_LOGGER_NAME = "sysdbcopy"
_CONSOLE_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s"
_FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s (%(filename)s:%(lineno)d): %(message)s"
_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

_configured = False
_console_handler: logging.Handler | None = None


def _configure_root_logger() -> None:
    """One-time setup of the root 'sysdbcopy' logger and its handlers."""
    global _configured, _console_handler
    if _configured:
        return
    _configured = True

    root = logging.getLogger(_ROOT_LOGGER_NAME)
    root.setLevel(logging.DEBUG)

    # --- Console handler ---
    _console_handler = logging.StreamHandler(sys.stderr)
    _console_handler.setLevel(get_log_level())
    _console_handler.setFormatter(
        logging.Formatter(fmt=_CONSOLE_FORMAT, datefmt=_DATE_FORMAT)
    )
    root.addHandler(_console_handler)

    # --- Optional file handler ---
    if CONFIG.transfer.log_file:
        log_path = Path(CONFIG.transfer.log_file)
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path, encoding="utf-8")
            file_handler.setLevel(logging.DEBUG)  # Log everything to file
            file_handler.setFormatter(
                logging.Formatter(fmt=_FILE_FORMAT, datefmt=_DATE_FORMAT)
            )
            root.addHandler(file_handler)
        except OSError as exc:
            root.warning("Could not create log file '%s': %s", log_path, exc)


_configure_root_logger()


def set_console_level(level: int) -> None:
    """Change the console handler threshold (used by ``--verbose``)."""
    if _console_handler is not None:
        _console_handler.setLevel(level)


def get_logger(name: str) -> logging.Logger:
    """
    Return a child logger scoped to the given name.

    Args:
        name: Typically ``__name__`` of the calling module.

    Returns:
        A :class:`logging.Logger` instance under the 'sysdbcopy' hierarchy.

    Example::

        log = get_logger(__name__)
        log.info("Pass started")
        log.debug("Statement skipped: %s", text)
    """
    return logging.getLogger(f"{_ROOT_LOGGER_NAME}.{name}")
