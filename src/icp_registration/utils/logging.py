"""
Logging Utilities

Consistent logger construction for the registration modules. Each module
creates its own logger at import time; the host application can then raise
or lower verbosity for the whole package from the loaded configuration.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .config import AppConfig

PACKAGE_LOGGER = "icp_registration"

CONSOLE_FORMAT = '%(asctime)s | %(levelname)s | %(name)s | %(message)s'
FILE_FORMAT = '%(asctime)s | %(levelname)s | %(threadName)s | %(name)s | %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logger(name: str,
                 level: int = logging.INFO,
                 log_file: Optional[str] = None) -> logging.Logger:
    """
    Set up a logger with consistent formatting.

    Args:
        name: Logger name (usually __name__)
        level: Logging level (default: logging.INFO)
        log_file: Optional log file path. If provided, logs will be written to this file

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Avoid adding multiple handlers
    if logger.handlers:
        return logger

    logger.setLevel(level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(file_handler)

    return logger


def configure_logging(cfg: "AppConfig") -> logging.Logger:
    """
    Apply the ``logging`` section of a loaded config to every package logger.

    Module loggers keep their console handlers; only their levels change. When
    ``cfg.logging.file`` is set a file handler is attached to the package root
    logger, which every module logger propagates to.

    Returns:
        The package root logger.
    """
    level = getattr(logging, cfg.logging.level.upper(), logging.INFO)

    root = logging.getLogger(PACKAGE_LOGGER)
    root.setLevel(level)

    if cfg.logging.file and not any(isinstance(h, logging.FileHandler) for h in root.handlers):
        log_path = Path(cfg.logging.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
        root.addHandler(file_handler)

    prefix = PACKAGE_LOGGER + "."
    for name, existing in logging.root.manager.loggerDict.items():
        if not name.startswith(prefix) or not isinstance(existing, logging.Logger):
            continue
        existing.setLevel(level)
        for handler in existing.handlers:
            handler.setLevel(level)

    for handler in root.handlers:
        handler.setLevel(level)

    return root
