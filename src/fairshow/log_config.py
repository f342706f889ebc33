"""Logging setup for the command line and long-running watch mode."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from fairshow.config.models import LoggingSettings

LOG_FILENAME = "fairshow.log"
_FILE_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
_MANAGED_ATTR = "_fairshow_managed"


def configure_logging(
    settings: LoggingSettings,
    log_path: Optional[Path] = None,
    *,
    console: Optional[Console] = None,
    level_override: Optional[str] = None,
) -> logging.Logger:
    """Install rotating-file and rich console handlers on the package logger.

    Calling this repeatedly replaces the handlers it installed before.

    Args:
        settings: Level and rotation limits from the configuration.
        log_path: Destination of the rotating log file; omitted disables file logging.
        console: Console used by the rich handler; defaults to stderr.
        level_override: Level name taking precedence over ``settings.level``.

    Returns:
        logging.Logger: The configured ``fairshow`` logger.
    """
    logger = logging.getLogger("fairshow")
    level_name = (level_override or settings.level).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.WARNING
    logger.setLevel(level)

    for handler in list(logger.handlers):
        if getattr(handler, _MANAGED_ATTR, False):
            logger.removeHandler(handler)
            handler.close()

    rich_handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    rich_handler.setLevel(level)
    setattr(rich_handler, _MANAGED_ATTR, True)
    logger.addHandler(rich_handler)

    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=max(settings.max_size_mb, 1) * 1024 * 1024,
            backupCount=max(settings.backup_count, 0),
            encoding="utf-8",
        )
        # The file keeps INFO even when the console is quieter.
        file_handler.setLevel(min(level, logging.INFO))
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        setattr(file_handler, _MANAGED_ATTR, True)
        logger.addHandler(file_handler)
        logger.setLevel(min(level, logging.INFO))

    logger.propagate = False
    return logger


__all__ = ["configure_logging", "LOG_FILENAME"]
