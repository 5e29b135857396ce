"""
timerpanel/services/logging.py

Centralised logging setup for the timer panel.
Falls back to /tmp and then to console-only output when the log
directory cannot be created.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOGGER_NAME = "timerpanel"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def resolve_log_file(base: Optional[Path] = None) -> Optional[Path]:
    """Return a writable log file path, or None for console-only logging."""

    candidates = [base] if base is not None else [Path.home() / ".timerpanel" / "logs"]
    candidates.append(Path("/tmp") / "timerpanel_logs")
    for directory in candidates:
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            print(f"Warning: cannot create log directory {directory}: {e}", file=sys.stderr)
            continue
        return directory / "timerpanel.log"
    return None


def setup_logging(level=logging.INFO, log_dir: Optional[Path] = None):
    """
    Configure rotating logging once.
    - Default level: INFO
    - Max size: 1 MB
    - Up to 3 rotated files
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    # Avoid duplicate handlers when called more than once
    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    log_file = resolve_log_file(log_dir)
    if log_file:
        try:
            file_handler = RotatingFileHandler(
                log_file, maxBytes=1_000_000, backupCount=3, encoding="utf-8"
            )
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            print(f"Warning: cannot write log file: {e}", file=sys.stderr)

    # Console handler (stderr) is always available
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    logger.info("Logging initialised")
    return logger
