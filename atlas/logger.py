"""
ATLAS Tracker - Logging
Coloured console output plus a rotating log file, configured from AppConfig.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from .config import get_app_config


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class ColorFormatter(logging.Formatter):
    """Console formatter colouring each line by level."""

    RESET = "\x1b[0m"
    LEVEL_COLORS = {
        logging.DEBUG: "\x1b[38;20m",
        logging.INFO: "\x1b[34;20m",
        logging.WARNING: "\x1b[33;20m",
        logging.ERROR: "\x1b[31;20m",
        logging.CRITICAL: "\x1b[31;1m",
    }

    def __init__(self, use_color: bool = True):
        super().__init__(LOG_FORMAT + " (%(filename)s:%(lineno)d)", datefmt=DATE_FORMAT)
        self.use_color = use_color

    def format(self, record):
        line = super().format(record)
        color = self.LEVEL_COLORS.get(record.levelno)
        if not self.use_color or not color:
            return line
        return f"{color}{line}{self.RESET}"


def setup_logger(
    name: str = "atlas",
    level: Optional[str] = None,
    log_dir: Optional[str] = None
) -> logging.Logger:
    """
    Configure the application logger once.

    Level and log directory default to ATLAS_LOG_LEVEL and ATLAS_LOG_DIR.
    Calling again returns the already configured logger.
    """
    config = get_app_config()
    logger = logging.getLogger(name)
    logger.setLevel((level or config.log_level).upper())

    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(ColorFormatter(use_color=sys.stdout.isatty()))
    logger.addHandler(console_handler)

    # 5MB per file, last 5 kept
    log_dir = log_dir or config.log_dir
    os.makedirs(log_dir, exist_ok=True)
    file_handler = RotatingFileHandler(
        os.path.join(log_dir, "atlas.log"),
        maxBytes=5 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8"
    )
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(file_handler)

    return logger


logger = setup_logger()
