"""
Logging Configuration
Console and optional file logging for the 'anamorph' package.

Per-sample trace failures are logged at WARNING and mesh bookkeeping at
DEBUG, so a log file always records DEBUG regardless of the console level.
"""
import logging
import sys
from typing import Optional

PACKAGE_LOGGER = "anamorph"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%H:%M:%S'


def level_for_verbosity(verbose: int) -> int:
    """Map a repeated ``-v`` count to a console level (0 -> INFO, 1+ -> DEBUG)."""
    return logging.DEBUG if verbose > 0 else logging.INFO


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    jax_level: int = logging.WARNING,
) -> logging.Logger:
    """
    Attach console (and optionally file) handlers to the package logger.

    Args:
        level: Console logging level.
        log_file: Optional path; the file gets every record down to DEBUG.
        jax_level: Level for the 'jax' logger, which reports backend
            probing at INFO on every process start.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(logging.DEBUG if log_file else level)

    if logger.hasHandlers():
        logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logging.getLogger("jax").setLevel(jax_level)
    return logger
