"""Logging setup with rotating file + console output."""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Union


def setup_logger(
    log_dir: Union[str, Path, None] = None,
    level: Union[int, str] = logging.INFO,
) -> logging.Logger:
    """Configure the ``statecrawl`` logger once and return it.

    Child loggers (``logging.getLogger(__name__)`` inside the package)
    propagate here.  Passing ``log_dir=None`` skips the file handler.
    """
    logger = logging.getLogger("statecrawl")
    logger.setLevel(level)

    if logger.handlers:
        return logger

    fmt = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Console handler
    ch = logging.StreamHandler()
    ch.setLevel(level)
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    if log_dir is not None:
        os.makedirs(log_dir, exist_ok=True)
        # Rotating file handler (10MB per file, keep 5)
        fh = RotatingFileHandler(
            os.path.join(log_dir, "crawl.log"),
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
        )
        fh.setLevel(level)
        fh.setFormatter(fmt)
        logger.addHandler(fh)

    return logger
