"""Logging configuration and utilities.

Every module logs under the ``fiducial_locator`` namespace. Per-marker
rejections are logged at DEBUG, skipped markers and numeric failures at
WARNING, so INFO output stays at one line per notable pipeline event.
"""

import logging
import sys
from pathlib import Path

PACKAGE_LOGGER = "fiducial_locator"

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _add_handler(logger: logging.Logger, handler: logging.Handler, level: int) -> None:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(handler)


def setup_logging(level: str = "INFO", log_file: str | None = None) -> logging.Logger:
    """Configure the package logger.

    Calling this again replaces the previous handlers, closing any open log
    file. Python warnings (such as numpy's invalid-value warnings raised by
    degenerate marker geometry) are routed into the log as well.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to log file

    Returns:
        The configured package logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(log_level)

    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    _add_handler(package_logger, logging.StreamHandler(sys.stdout), log_level)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        _add_handler(package_logger, logging.FileHandler(log_path), log_level)

    logging.captureWarnings(True)
    warnings_logger = logging.getLogger("py.warnings")
    warnings_logger.handlers = list(package_logger.handlers)
    warnings_logger.setLevel(logging.WARNING)

    return package_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for a module.

    Args:
        name: Module name (typically __name__)

    Returns:
        Logger inside the package namespace
    """
    if name != PACKAGE_LOGGER and not name.startswith(f"{PACKAGE_LOGGER}."):
        name = f"{PACKAGE_LOGGER}.{name}"

    return logging.getLogger(name)
