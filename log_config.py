"""Logging configuration for Stickers."""

import logging
import sys
from pathlib import Path

logger = logging.getLogger("stickers")


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application.

    Args:
        verbose: If True, set DEBUG level. Otherwise INFO.
    """
    level = logging.DEBUG if verbose else logging.INFO

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))

    # File handler only if the log dir already exists
    log_dir = Path.home() / ".local" / "share" / "stickers"
    if log_dir.exists():
        file_handler = logging.FileHandler(log_dir / "stickers.log")
        file_handler.setLevel(logging.DEBUG)
        file_format = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        file_handler.setFormatter(file_format)
        logger.addHandler(file_handler)

    logger.addHandler(console_handler)
    # The file handler records DEBUG even when the console shows only INFO.
    logger.setLevel(logging.DEBUG if log_dir.exists() else level)
