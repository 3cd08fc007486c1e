"""
Structured logging configuration for table synchronization

Provides console and JSON-formatted logging with per-run context
(source table, destination table) attached to every record.

Usage:
    from tablesync.utils.logging import setup_logging, get_logger

    # Setup logging (call once at application startup)
    setup_logging(level="INFO", log_file="/var/log/tablesync/sync.log")

    logger = get_logger(__name__)
    logger.info("Sync finished", extra={"dest_table": "customers", "inserts": 12})
"""

from .config import configure_from_env, get_logger, setup_logging, shutdown_logging
from .formatters import ConsoleFormatter, JSONFormatter
from .handlers import ContextLogger

__all__ = [
    "setup_logging",
    "get_logger",
    "shutdown_logging",
    "configure_from_env",
    "JSONFormatter",
    "ConsoleFormatter",
    "ContextLogger",
]
