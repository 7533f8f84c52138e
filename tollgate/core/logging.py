"""Logging configuration and setup for Tollgate."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILENAME = "tollgate.log"


def setup_logging(
    level: str = "INFO",
    directory: str | Path | None = "logs",
    max_size_mb: int = 10,
    backup_count: int = 5,
) -> None:
    """Configure root logger with console and rotating file handlers.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        directory: Directory for log files. None disables the file handler.
        max_size_mb: Maximum size in MB before rotation.
        backup_count: Number of backup files to keep.
    """
    numeric_level = getattr(logging, level.upper())

    # Clear any existing handlers
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(numeric_level)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if directory is None:
        logging.info(f"Logging initialized: level={level}, console only")
        return

    log_dir = Path(directory)
    log_dir.mkdir(parents=True, exist_ok=True)

    file_handler = RotatingFileHandler(
        log_dir / LOG_FILENAME,
        maxBytes=max_size_mb * 1024 * 1024,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(numeric_level)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    logging.info(f"Logging initialized: level={level}, directory={log_dir}")
