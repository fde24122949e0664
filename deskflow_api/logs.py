"""Logging configuration."""

import sys

from loguru import logger

_configured_level: str | None = None


def _stderr(message) -> None:
    # Resolved on every write; the CLI test runner swaps sys.stderr.
    sys.stderr.write(message)


def setup_logging(level: str = "INFO"):
    """Send logs to stderr, which the Workers runtime collects as console output."""
    global _configured_level
    if _configured_level == level:
        return logger

    logger.remove()
    logger.add(
        _stderr,
        format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <7} | {name}:{function} | {message}",
        level=level,
        colorize=False,
        backtrace=False,
        diagnose=False,
    )
    _configured_level = level
    return logger
