"""
Logging configuration for the Email Companion application.
"""
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

from rich.console import Console
from rich.logging import RichHandler

from .config import config

MAX_LOG_BYTES = 5 * 1024 * 1024

SENSITIVE_KEYS = ('apikey', 'api_key', 'password', 'token', 'secret', 'body')


def setup_logger(
    name: str = "email_companion",
    log_file: Optional[Path] = None,
    level: int = logging.INFO,
) -> logging.Logger:
    """
    Set up a logger with both file and console handlers.

    Args:
        name: Logger name
        log_file: Path to log file (optional)
        level: Logging level

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    console_formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    file_formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"
    )

    # Console handler with Rich
    console_handler = RichHandler(
        console=Console(stderr=True),
        show_time=False,
        show_path=False,
        rich_tracebacks=True
    )
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    if log_file is None and config.logs_dir:
        log_file = config.logs_dir / f"{name}.log"

    if log_file:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            # Rotated at 5MB, one backup kept
            file_handler = RotatingFileHandler(log_file, maxBytes=MAX_LOG_BYTES, backupCount=1)
            file_handler.setFormatter(file_formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            logger.warning(f"File logging disabled, cannot open {log_file}: {e}")

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance. Creates a new logger if it doesn't exist.

    Args:
        name: Logger name (usually __name__ of the module)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def sanitize_for_log(data: Any) -> Any:
    """Redact sensitive values from a mapping before it is logged."""
    if not isinstance(data, dict):
        return data

    sanitized = dict(data)
    for key, value in sanitized.items():
        normalized = str(key).lower().replace('-', '_')
        if normalized in SENSITIVE_KEYS or normalized.endswith(tuple(f"_{m}" for m in SENSITIVE_KEYS)):
            sanitized[key] = '[REDACTED]' if value else None
    return sanitized


# Set up root logger
logger = setup_logger()


def handle_exception(exc_type, exc_value, exc_traceback):
    """Handle uncaught exceptions by logging them."""
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
        return

    logger.error(
        "Uncaught exception",
        exc_info=(exc_type, exc_value, exc_traceback)
    )


sys.excepthook = handle_exception
