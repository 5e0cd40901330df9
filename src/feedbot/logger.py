"""
Logging configuration for feedbot.

Uses loguru for console and rotating file output. Loggers can carry the
feed, guild and channel they work on; `setup_logger` renders whatever is
bound as a ``[feed=... channel=...]`` suffix through ``{extra[context]}``.
"""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger as _logger

from feedbot.config import get_config

CONTEXT_KEYS = ("feed", "guild", "channel")


def render_context(record: dict) -> None:
    """Loguru patcher that fills ``extra["context"]`` from bound keys."""
    extra = record["extra"]
    parts = [f"{key}={extra[key]}" for key in CONTEXT_KEYS if extra.get(key) is not None]
    extra["context"] = f" [{' '.join(parts)}]" if parts else ""


def setup_logger(
    level: Optional[str] = None,
    log_file: Optional[str] = None,
    rotation: Optional[str] = None,
    retention: Optional[str] = None,
    format: Optional[str] = None,
) -> None:
    """Configure the logger with file and console handlers.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, etc.)
        log_file: Path to log file
        rotation: Log rotation setting (e.g., "50 MB", "1 day")
        retention: Log retention setting (e.g., "14 days")
        format: Log format string, may use ``{extra[context]}``
    """
    log_config = get_config().logging

    level = level or log_config.level
    log_file = log_file or log_config.file_path
    rotation = rotation or log_config.rotation
    retention = retention or log_config.retention
    format = format or log_config.format

    _logger.remove()
    _logger.configure(patcher=render_context)

    if log_config.console_enabled:
        _logger.add(
            sys.stderr,
            format=format,
            level=level,
            colorize=True,
            backtrace=True,
            diagnose=False,
        )

    if log_config.file_enabled:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)

        _logger.add(
            log_file,
            format=format,
            level=level,
            rotation=rotation,
            retention=retention,
            compression="zip",
            encoding="utf-8",
            enqueue=True,  # feed workers log from several threads
            backtrace=True,
            diagnose=False,
        )


def get_logger(name: Optional[str] = None, **context):
    """Get a logger, optionally bound to a module name and poll context.

    Args:
        name: Logger name (typically __name__ from calling module)
        **context: Values such as ``feed``, ``guild`` or ``channel``;
            None values are left out

    Returns:
        Logger instance
    """
    bound = {key: value for key, value in context.items() if value is not None}
    if name:
        bound["name"] = name
    if not bound:
        return _logger
    return _logger.bind(**bound)


logger = _logger

__all__ = [
    "CONTEXT_KEYS",
    "setup_logger",
    "get_logger",
    "render_context",
    "logger",
]
