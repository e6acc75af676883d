"""
Logging Utility Module

Configures logging for the migration tool with file and console output.
Console output goes to stderr so stdout can carry a raw dump.
"""

import logging
import logging.handlers
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import colorama
from colorama import Fore, Style


LEVEL_COLORS = {
    'DEBUG': Fore.CYAN,
    'INFO': Fore.GREEN,
    'WARNING': Fore.YELLOW,
    'ERROR': Fore.RED,
    'CRITICAL': Fore.RED + Style.BRIGHT,
}


class ColorFormatter(logging.Formatter):
    """Formatter that colours the level name for terminal output."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = LEVEL_COLORS.get(record.levelname)
        if not color:
            return message
        return message.replace(record.levelname, f"{color}{record.levelname}{Style.RESET_ALL}", 1)


def setup_logging(log_level: str = 'INFO', log_file: Optional[str] = None,
                  log_dir: str = 'logs') -> logging.Logger:
    """
    Setup logging configuration for the migration tool.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path. If None, uses timestamp-based filename
        log_dir: Directory for generated log files

    Returns:
        Configured logger instance
    """
    if log_file is None:
        logs_dir = Path(log_dir)
        logs_dir.mkdir(exist_ok=True)
        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        log_file = logs_dir / f'migration_{timestamp}.log'

    colorama.init()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))
    root_logger.handlers.clear()

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(threadName)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    file_handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(getattr(logging, log_level.upper()))
    if sys.stderr.isatty():
        console_handler.setFormatter(ColorFormatter('%(levelname)s - %(message)s'))
    else:
        console_handler.setFormatter(logging.Formatter('%(levelname)s - %(message)s'))
    root_logger.addHandler(console_handler)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized - Level: {log_level}, File: {log_file}")

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a specific module.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def format_bytes(count: float) -> str:
    """Human readable byte count (1.5 MiB)."""
    for unit in ('B', 'KiB', 'MiB', 'GiB'):
        if abs(count) < 1024:
            return f"{count:.1f} {unit}" if unit != 'B' else f"{int(count)} B"
        count /= 1024
    return f"{count:.1f} TiB"


class MigrationLogger:
    """Specialized logger for timed streaming operations."""

    def __init__(self, name: str):
        self.logger = get_logger(name)
        self.start_time = None
        self.operation_count = 0

    def start_operation(self, operation: str):
        """Start timing an operation."""
        self.start_time = datetime.now()
        self.logger.info(f"Starting {operation}")

    def end_operation(self, operation: str, success: bool = True,
                      byte_count: Optional[int] = None):
        """End timing an operation and log results."""
        if self.start_time:
            duration = (datetime.now() - self.start_time).total_seconds()
            status = "completed" if success else "failed"

            if byte_count:
                rate = byte_count / duration if duration > 0 else 0
                self.logger.info(
                    f"{operation} {status} in {duration:.2f}s - "
                    f"{format_bytes(byte_count)} streamed ({format_bytes(rate)}/s)"
                )
            else:
                self.logger.info(f"{operation} {status} in {duration:.2f}s")

            self.operation_count += 1
            self.start_time = None
