"""PortalBot logging configuration.

Centralised logger setup. All modules import from here:
    from portalbot.log import logger

Writes to ~/.portalbot/portalbot.log (rotating, 5 MB max, 3 backups).
Set PORTALBOT_HOME to write somewhere else. The `logging` config section
(level, rotation size, optional stderr echo) is applied by configure_logging()
when the app is built.
"""

from __future__ import annotations

import logging
import os
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path

_logger_lock = threading.Lock()
_console_handler: logging.Handler | None = None

_DEFAULT_MAX_BYTES = 5 * 1024 * 1024  # 5 MB
_DEFAULT_BACKUPS = 3
_FORMAT = logging.Formatter(
    "%(asctime)s [%(levelname)s] %(name)s.%(funcName)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


def get_home_dir() -> Path:
    """Return the PortalBot home directory, creating it if needed."""
    override = os.environ.get("PORTALBOT_HOME", "")
    home = Path(override) if override else Path.home() / ".portalbot"
    home.mkdir(parents=True, exist_ok=True)
    return home


def _setup_logger() -> logging.Logger:
    """Configure and return the portalbot logger."""
    log = logging.getLogger("portalbot")

    with _logger_lock:
        if log.handlers:
            return log

        log.setLevel(logging.DEBUG)
        log.propagate = False

        try:
            log_path = get_home_dir() / "portalbot.log"
            handler = RotatingFileHandler(
                str(log_path),
                maxBytes=_DEFAULT_MAX_BYTES,
                backupCount=_DEFAULT_BACKUPS,
                encoding="utf-8",
            )
            handler.setLevel(logging.DEBUG)
            handler.setFormatter(_FORMAT)
            log.addHandler(handler)
        except OSError:
            # Read-only home: keep logging calls harmless
            log.addHandler(logging.NullHandler())
            try:
                sys.stderr.write("portalbot: WARNING: could not create log file, logging disabled\n")
            except OSError:
                pass

    return log


logger = _setup_logger()


def configure_logging(settings: dict | None = None) -> None:
    """Apply the ``logging`` config section to the portalbot logger.

    Keys: ``level`` (name, default DEBUG), ``max_bytes`` / ``backup_count``
    for the rotating file, ``console`` (bool) to echo records to stderr.
    """
    global _console_handler
    settings = settings or {}

    level = logging.getLevelName(str(settings.get("level", "DEBUG")).upper())
    if not isinstance(level, int):
        logger.warning("Unknown log level %r, keeping current level", settings.get("level"))
        level = logger.level

    with _logger_lock:
        logger.setLevel(level)

        for handler in logger.handlers:
            if isinstance(handler, RotatingFileHandler):
                handler.maxBytes = int(settings.get("max_bytes", _DEFAULT_MAX_BYTES))
                handler.backupCount = int(settings.get("backup_count", _DEFAULT_BACKUPS))

        if settings.get("console") and _console_handler is None:
            _console_handler = logging.StreamHandler(sys.stderr)
            _console_handler.setFormatter(_FORMAT)
            logger.addHandler(_console_handler)
        elif not settings.get("console") and _console_handler is not None:
            logger.removeHandler(_console_handler)
            _console_handler = None
