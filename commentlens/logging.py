"""Logging configuration using loguru."""
from __future__ import annotations

import os
import sys

from loguru import logger


def configure_logging(level: str | None = None) -> None:
    """Configure loguru logger with structured output."""

    logger.remove()
    logger.add(
        sys.stderr,
        format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level} | {name}:{function}:{line} - {message} | {extra}",
        serialize=False,
        level=level or os.environ.get("LOG_LEVEL", "INFO"),
    )


def get_logger(name: str):
    configure_logging()
    return logger.bind(component=name)
