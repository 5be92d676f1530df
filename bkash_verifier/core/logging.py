"""Centralized logging configuration for the application."""

import logging
import sys


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Configure and return the application logger.

    Sets up a consistent log format across the whole service with
    timestamps, log level, module name, and the message.  Calling it more
    than once does not stack handlers.

    Args:
        level: The log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).

    Returns:
        The configured root application logger.
    """
    log_format = "%(asctime)s | %(levelname)-8s | %(name)-40s | %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    logger = logging.getLogger("bkash_verifier")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(log_format, datefmt=date_format))
        logger.addHandler(handler)

    # Prevent duplicate logs through the root logger
    logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a child logger under the bkash_verifier namespace.

    Usage:
        from bkash_verifier.core.logging import get_logger
        logger = get_logger(__name__)
        logger.info("Receipt ingested")

    Module names that already start with the package name are not
    prefixed twice.

    Args:
        name: Usually __name__ of the calling module.

    Returns:
        A child logger with the given name.
    """
    if name == "bkash_verifier" or name.startswith("bkash_verifier."):
        return logging.getLogger(name)
    return logging.getLogger(f"bkash_verifier.{name}")
