"""
Unified Logging Configuration

This module sets up a centralized logging system for the feed connection
manager. All modules should import and use the logger from this module
instead of using print() statements.

Usage:
    from core.logging import logger, get_logger

    logger.info("General informational messages")

    log = get_logger(__name__)
    log.debug("Detailed debugging information")

Log Levels (from most to least verbose):
    DEBUG    - Signal-level detail (e.g., "Heartbeat received")
    INFO     - Lifecycle messages (e.g., "Connected to wss://...")
    WARNING  - Recoverable trouble (e.g., "Connection dropped, reconnecting")
    ERROR    - Failures that need attention (e.g., "Listener raised")

Configuration:
    Log level is controlled by the FEED_LOG_LEVEL setting in .env file.
"""

import logging
import sys
from typing import Optional


def setup_logging(
    log_level: str = "INFO",
    log_format: Optional[str] = None,
    include_timestamp: bool = True,
    include_module: bool = True
) -> logging.Logger:
    """
    Configure and return the application logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Custom log format string (uses default if None)
        include_timestamp: Include timestamp in log messages
        include_module: Include module name in log messages

    Returns:
        logging.Logger: Configured logger instance

    Example:
        >>> logger = setup_logging(log_level="DEBUG")
        >>> logger.info("Feed started")
        2024-01-01 12:00:00 [INFO] feedlink: Feed started
    """
    if log_format is None:
        format_parts = []

        if include_timestamp:
            format_parts.append("%(asctime)s")

        format_parts.append("[%(levelname)s]")

        if include_module:
            format_parts.append("%(name)s")

        format_parts.append("%(message)s")

        log_format = " ".join(format_parts)

    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format=log_format,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True
    )

    logger = logging.getLogger("feedlink")
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    return logger


# ============================================
# Initialize Logger with Settings
# ============================================

from core.config import settings

logger = setup_logging(log_level=settings.log_level)


# ============================================
# Convenience Functions
# ============================================

def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a specific module or component.

    Args:
        name: Name for the logger (typically __name__)

    Returns:
        logging.Logger: Child of the "feedlink" logger

    Example:
        # In core/connection.py:
        logger = get_logger(__name__)  # "feedlink.core.connection"
    """
    return logging.getLogger(f"feedlink.{name}")


def log_connection_event(address: str, event: str, details: Optional[str] = None) -> None:
    """
    Log a connection lifecycle event with consistent formatting.

    Args:
        address: Endpoint address
        event: Event type (e.g., "connected", "disconnected", "error")
        details: Additional details (optional)

    Example:
        >>> log_connection_event("wss://node.example", "disconnected", "liveness timeout")
        [WARNING] Connection: wss://node.example disconnected | liveness timeout
    """
    details_str = f" | {details}" if details else ""

    if event == "error":
        level = logging.ERROR
    elif event == "disconnected":
        level = logging.WARNING
    else:
        level = logging.INFO
    logger.log(level, f"Connection: {address} {event}{details_str}")


logger.debug("Logging system initialized")
