"""Logging for release runs.

Every component logs through a child of the ``pkgrelease`` logger, so one
call to :func:`setup_logger` at startup routes the whole run to the
rotating release log and the console.
"""

import logging
import logging.handlers
import os

from .config import LoggingConfig

ROOT_LOGGER = "pkgrelease"
LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"
LOG_MAX_BYTES = 10485760  # 10MB
LOG_BACKUP_COUNT = 5


def setup_logger(config: LoggingConfig, name: str = ROOT_LOGGER) -> logging.Logger:
    """Attach release log handlers according to the logging configuration.

    Args:
        config: Level, log directory and enabled outputs
        name: Logger to configure, the ``pkgrelease`` root by default

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    level = config.level.upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ValueError(
            f"Invalid log level: {config.level}. "
            f"Must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL"
        )
    logger.setLevel(level)

    # Prevent duplicate handlers
    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    if config.file_logging:
        os.makedirs(config.log_dir, exist_ok=True)
        log_file = os.path.join(config.log_dir, f"{name}.log")
        file_handler = logging.handlers.RotatingFileHandler(
            log_file, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if config.console_logging:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a component logger below the ``pkgrelease`` root.

    Args:
        name: Component name, e.g. ``"signing"`` or ``"repos.deb"``

    Returns:
        Logger instance
    """
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
