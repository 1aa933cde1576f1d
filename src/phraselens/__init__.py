"""phraselens - live phrase rewriting over a mutable document tree.

Finds known phrases in text, swaps each for a marker element showing its
replacement while remembering the original, and keeps the result current as
the document changes.
"""

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

__version__ = "0.1.0"


def setup_logging(log_dir: Path | None = None, level: str | None = None) -> Path:
    """Configure logging to both console and rotating file.

    Args:
        log_dir: Directory for log files; defaults to the configured one.
        level: Console level name; defaults to the configured one, or DEBUG
            when debug mode is on.

    Returns:
        Path of the log file in use.
    """
    from phraselens.config import get_settings

    config = get_settings().logging
    log_dir = log_dir if log_dir is not None else config.log_dir
    if level is None:
        level = "DEBUG" if config.debug else config.level

    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"phraselens.{os.getpid()}.log"

    # Root logger config
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # File handler - detailed logging with rotation (10MB, keep 5 backups)
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    file_handler.setFormatter(file_formatter)

    # Console handler - less verbose
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_formatter = logging.Formatter("%(levelname)s: %(message)s")
    console_handler.setFormatter(console_formatter)

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    logging.info("Logging configured. Log file: %s", log_file.absolute())
    return log_file
