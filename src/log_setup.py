"""
Logging configuration for the seasonal screener.

Set SCREENER_DEV_MODE=true for verbose debug output with line numbers.
"""
from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from pathlib import Path

DEV_MODE = os.getenv("SCREENER_DEV_MODE", "false").lower() in ("true", "1", "yes")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEV_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s:%(lineno)d - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    level: int | str = logging.INFO,
    dev_mode: bool | None = None,
    log_file: str | Path | None = None,
) -> logging.Logger:
    """
    Configure the root logger.

    Args:
        level: Logging level (default: INFO)
        dev_mode: Verbose DEBUG logging (default: from SCREENER_DEV_MODE)
        log_file: Optional path for a rotating application log
    """
    if dev_mode is None:
        dev_mode = DEV_MODE
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    if dev_mode:
        level = logging.DEBUG

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(
        logging.Formatter(DEV_LOG_FORMAT if dev_mode else LOG_FORMAT, datefmt=DATE_FORMAT)
    )
    root_logger.addHandler(console_handler)

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        root_logger.addHandler(file_handler)

    # yfinance and apscheduler are chatty at INFO
    logging.getLogger("yfinance").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)

    return root_logger
