"""Logging helpers."""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

LOGGER_NAME = "voice_quality"


def setup_logging(
    log_dir: Optional[str] = "logs",
    level: int = logging.INFO,
    console: bool = True,
) -> tuple[logging.Logger, Optional[str]]:
    """Attach file and console handlers to the package logger once.

    Returns the logger and the log file path (None when log_dir is None).
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    log_path = None
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        log_path = os.path.join(log_dir, "voice_quality.log")

    if not logger.handlers:
        fmt = logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        if log_path:
            handler = RotatingFileHandler(log_path, maxBytes=2_000_000, backupCount=3)
            handler.setFormatter(fmt)
            logger.addHandler(handler)
        if console:
            stream = logging.StreamHandler(sys.stderr)
            stream.setFormatter(fmt)
            logger.addHandler(stream)

    return logger, log_path
