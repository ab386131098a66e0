"""Logging configuration for the kubelaunch package."""
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from kubelaunch.config import Config


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure the ``kubelaunch`` logger hierarchy.

    Args:
        level: The logging level (default: logging.INFO)
        log_file: Optional path of a rotating log file (defaults to LOG_FILE)

    Returns:
        The configured package logger
    """
    logger = logging.getLogger("kubelaunch")
    logger.setLevel(level)

    formatter = logging.Formatter(Config.LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')

    # Don't add handlers if they're already configured
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

        log_file = log_file or Config.LOG_FILE
        if log_file:
            path = Path(log_file).expanduser().absolute()
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                filename=path,
                maxBytes=Config.LOG_MAX_SIZE_MB * 1024 * 1024,
                backupCount=Config.LOG_BACKUP_COUNT
            )
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    for handler in logger.handlers:
        handler.setLevel(level)

    # Disable debug logging for noisy libraries
    if level > logging.DEBUG:
        logging.getLogger('paramiko').setLevel(logging.WARNING)
        logging.getLogger('urllib3').setLevel(logging.WARNING)

    return logger


def level_for(debug: bool = False, verbosity: int = 0) -> int:
    """Map the --debug / --v flags onto a logging level."""
    if debug or verbosity >= 8:
        return logging.DEBUG
    return getattr(logging, Config.LOG_LEVEL, logging.INFO)
