"""Logging setup for embedding the exchange core in a host application.

Every module logs through logging.getLogger(__name__), so all loggers live
under the "src" package logger. setup_logging() attaches one stdout handler
there; CLIs use logging.basicConfig instead.
"""

from __future__ import annotations

import logging
import os
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Chatty transport loggers pulled in by the requests and supabase clients
NOISY_LOGGERS = ("urllib3", "httpx", "httpcore", "hpack")


def resolve_level(level: int | str | None) -> int:
    """Accept a logging constant, a level name, or None (LOG_LEVEL env, else INFO)."""
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level '{level}'")
    return resolved


def setup_logging(
    level: int | str | None = None,
    module_name: str = "src",
    quiet_transports: bool = True,
) -> logging.Logger:
    """Configure and return the package logger.

    Args:
        level: Level constant or name; defaults to $LOG_LEVEL, then INFO.
        module_name: Logger to configure; "src" covers the whole package.
        quiet_transports: Raise HTTP client loggers to WARNING.

    Returns:
        Configured logger. Calling again only updates the level.
    """
    resolved = resolve_level(level)
    logger = logging.getLogger(module_name)
    logger.setLevel(resolved)

    if quiet_transports:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(resolved)
        return logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False

    return logger
