"""
Process-wide logging setup for applications embedding the synchronizer.

The library itself only logs through module loggers; an application calls
``setup_logging`` (or ``configure_from_env``) once to decide where those
records go and how they look.
"""

import logging
import logging.config
import os
from typing import Any

from .formatters import ConsoleFormatter, JSONFormatter

TRUTHY = ("true", "1", "yes", "on")

PLAIN_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Libraries that log per request or per span at INFO
NOISY_LOGGERS = ("urllib3", "grpc", "opentelemetry")


def _formatters(json_format: bool, app_name: str) -> dict[str, dict[str, Any]]:
    if json_format:
        # dictConfig consumes each formatter mapping, so build one per handler
        return {name: {"()": JSONFormatter, "app_name": app_name} for name in ("console", "file")}
    return {
        "console": {"()": ConsoleFormatter, "use_colors": True},
        "file": {"format": PLAIN_FORMAT, "datefmt": DATE_FORMAT},
    }


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    console_output: bool = True,
    json_format: bool = False,
    app_name: str = "tablesync",
    max_bytes: int = 50 * 1024 * 1024,  # 50MB
    backup_count: int = 5,
) -> None:
    """
    Route all log records to stderr and/or a rotating file

    Handlers already on the root logger are replaced. Unknown level names
    fall back to INFO.

    Args:
        level: Level name for the root logger and its handlers
        log_file: File to write to; no file handler when None
        console_output: Whether to write to stderr
        json_format: One JSON document per record on every handler
        app_name: Value of the "app" field in JSON records
        max_bytes: Size at which the log file is rotated
        backup_count: Rotated files kept
    """
    level_name = logging.getLevelName(getattr(logging, level.upper(), logging.INFO))

    handlers: dict[str, dict[str, Any]] = {}
    if console_output:
        handlers["console"] = {
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stderr",
            "formatter": "console",
            "level": level_name,
        }
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": log_file,
            "maxBytes": max_bytes,
            "backupCount": backup_count,
            "encoding": "utf-8",
            "formatter": "file",
            "level": level_name,
        }

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": _formatters(json_format, app_name),
        "handlers": handlers,
        "root": {"level": level_name, "handlers": list(handlers)},
        "loggers": {name: {"level": "WARNING"} for name in NOISY_LOGGERS},
    })

    logging.getLogger(__name__).info(
        f"Logging initialized: level={level_name}, file={log_file or 'none'}, "
        f"console={console_output}, json={json_format}"
    )


def get_logger(name: str) -> logging.Logger:
    """Module logger, e.g. ``get_logger(__name__)``."""
    return logging.getLogger(name)


def shutdown_logging() -> None:
    """
    Flush and close the root handlers, e.g. via ``atexit.register(shutdown_logging)``.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    logging.shutdown()


def configure_from_env() -> None:
    """
    Call setup_logging with values taken from the environment

    Environment variables:
        LOG_LEVEL: level name (default: INFO)
        LOG_FILE: log file path (default: no file)
        LOG_JSON: JSON records when truthy (default: false)
        LOG_CONSOLE: stderr output when truthy (default: true)
    """
    setup_logging(
        level=os.getenv("LOG_LEVEL", "INFO"),
        log_file=os.getenv("LOG_FILE") or None,
        console_output=os.getenv("LOG_CONSOLE", "true").lower() in TRUTHY,
        json_format=os.getenv("LOG_JSON", "false").lower() in TRUTHY,
    )
