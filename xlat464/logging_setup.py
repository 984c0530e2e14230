"""
Logging infrastructure for xlat464.

Provides file-based logging with rotation and colored console output.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .config import (
    LOG_FILE,
    LOG_MAX_BYTES,
    LOG_BACKUP_COUNT,
)


# Package logger; module loggers are its children
_logger: Optional[logging.Logger] = None


class ColorFormatter(logging.Formatter):
    """
    Formatter that adds colors for terminal output.
    """

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        color = self.COLORS.get(levelname, "")
        record.levelname = f"{color}{levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


def setup_logging(
    log_to_file: bool = True,
    log_to_console: bool = True,
    log_level: str = "INFO",
    log_file: str = LOG_FILE,
) -> logging.Logger:
    """
    Configure the logging system.

    Args:
        log_to_file: Enable rotating file logging
        log_to_console: Enable colored stderr logging
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path of the rotating log file

    Returns:
        Configured logger instance
    """
    global _logger

    if _logger is not None:
        return _logger

    level = getattr(logging, log_level.upper(), logging.INFO)

    _logger = logging.getLogger("xlat464")
    _logger.setLevel(logging.DEBUG if log_to_file else level)
    _logger.propagate = False

    # Clear existing handlers
    _logger.handlers.clear()

    # File handler with rotation
    if log_to_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=LOG_MAX_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)  # Capture everything to file
        file_formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        file_handler.setFormatter(file_formatter)
        _logger.addHandler(file_handler)

    if log_to_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(
            ColorFormatter("%(asctime)s %(levelname)s %(name)s: %(message)s", datefmt="%H:%M:%S")
        )
        _logger.addHandler(console_handler)

    return _logger


def get_logger() -> logging.Logger:
    """Get the xlat464 logger, initializing if necessary."""
    global _logger
    if _logger is None:
        _logger = setup_logging(log_to_file=False, log_to_console=True)
    return _logger


def log(msg: str) -> None:
    """Log an info message on the package logger."""
    get_logger().info(msg)


def format_block(title: str, lines: list[str]) -> str:
    """
    Format a titled block for log output.

    Args:
        title: Block title (displayed in brackets)
        lines: Content lines (will be indented)

    Returns:
        Formatted multi-line string
    """
    pad = "  "
    return "\n".join([f"[{title}]", *[pad + ln for ln in lines]])
