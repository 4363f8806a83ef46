"""Logging helpers for the tabscribe project."""

from __future__ import annotations

import logging
from typing import Optional

_LOGGER_CONFIGURED = False

# HTTP client libraries log every request at INFO; one line per segment is enough.
_NOISY_LOGGERS = ("httpx", "httpcore", "openai")


def configure_logging(level: int = logging.INFO, *, verbose: bool = False) -> None:
    """Configure basic logging once for the application.

    ``verbose`` switches to DEBUG and keeps the HTTP client loggers at the
    same level instead of silencing them.
    """

    global _LOGGER_CONFIGURED
    if verbose:
        level = logging.DEBUG

    if not _LOGGER_CONFIGURED:
        logging.basicConfig(
            level=level,
            format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        )
        _LOGGER_CONFIGURED = True
    elif not verbose:
        return

    logging.getLogger().setLevel(level)
    library_level = level if verbose else logging.WARNING
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a logger, configuring the root handler on first use."""

    configure_logging()
    return logging.getLogger(name or "tabscribe")


__all__ = ["configure_logging", "get_logger"]
