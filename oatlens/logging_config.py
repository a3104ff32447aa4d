"""Logging helpers for console output and per-run trace files."""

from __future__ import annotations

import logging
from pathlib import Path

__all__ = [
    "setup_logging",
    "configure_debug_file_logger",
    "close_debug_logger",
]

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(log_level: int = logging.WARNING) -> logging.Logger:
    """Return the package logger after configuring console output.

    ``logging.basicConfig`` keeps any handlers a caller configured already.
    Log records go to stderr so they never interleave with report text
    written to stdout.
    """

    console = logging.StreamHandler()
    console.setLevel(log_level)
    console.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    logging.basicConfig(level=log_level, handlers=[console])
    return logging.getLogger("oatlens")


def configure_debug_file_logger(
    name: str,
    path: Path,
    *,
    level: int = logging.DEBUG,
    formatter: logging.Formatter | None = None,
) -> logging.Logger:
    """Send every record of the ``name`` logger tree to ``path`` as well.

    Records still propagate to the console handler, which filters them by its
    own level.  A trace file installed earlier on the same logger is closed
    and replaced.
    """

    path.parent.mkdir(parents=True, exist_ok=True)
    logger = logging.getLogger(name)
    logger.setLevel(level)

    close_debug_logger(logger)

    handler = logging.FileHandler(path, mode="w", encoding="utf-8")
    handler._oatlens_trace = True  # type: ignore[attr-defined]
    if formatter is None:
        formatter = logging.Formatter(LOG_FORMAT)
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    return logger


def close_debug_logger(logger: logging.Logger) -> None:
    """Tear down handlers installed by :func:`configure_debug_file_logger`."""

    for handler in list(logger.handlers):
        if getattr(handler, "_oatlens_trace", False):
            logger.removeHandler(handler)
            handler.close()
