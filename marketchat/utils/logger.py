"""
Logging utilities.

WHAT: Console + file logging for sessions, retries and reconciliation
WHY: Retry attempts and reverted optimistic updates must be traceable
HOW: Root logger with a console handler (INFO) and a file handler (DEBUG)
"""

import logging
import sys
from pathlib import Path
from typing import Optional

from ..core.config import settings

CONSOLE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(pathname)s:%(lineno)d - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# httpx logs every request at INFO; the client logs its own failures
NOISY_LOGGERS = ("httpx", "httpcore")


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None):
    """
    Configure application logging.

    Args:
        level: Root level name (default settings.LOG_LEVEL)
        log_file: Path of the debug log (default settings.LOG_FILE);
            an empty string disables file logging
    """
    level_name = (level or settings.LOG_LEVEL).upper()
    log_path = settings.LOG_FILE if log_file is None else log_file

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level_name, logging.INFO))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    root_logger.addHandler(console_handler)

    if log_path:
        path = Path(log_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
        root_logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.info(f"Logging initialized (level={level_name}, file={log_path or 'disabled'})")


def get_logger(name: str) -> logging.Logger:
    """Logger for a module (pass __name__)."""
    return logging.getLogger(name)
