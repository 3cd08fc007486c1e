"""
Log formatters that surface record context.

The synchronizer attaches table names and counters to its records as
``extra`` fields; both formatters render them.
"""

import json
import logging
import socket
import sys
import traceback
from datetime import UTC, datetime
from typing import Any

# Attributes every LogRecord has; anything else was supplied by the caller
_STANDARD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


def extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Caller-supplied context of a record, in insertion order."""
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _STANDARD_ATTRS and not key.startswith("_")
    }


class JSONFormatter(logging.Formatter):
    """
    Formats each record as a single-line JSON document

    Caller context is nested under "context", exception details under
    "exception". Values json cannot encode are written with ``str()``.
    """

    def __init__(
        self,
        include_timestamp: bool = True,
        include_hostname: bool = True,
        app_name: str = "tablesync",
    ):
        super().__init__()
        self.include_timestamp = include_timestamp
        self.include_hostname = include_hostname
        self.app_name = app_name
        self.hostname = socket.gethostname() if include_hostname else None

    def format(self, record: logging.LogRecord) -> str:
        document: dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "app": self.app_name,
        }
        if self.include_timestamp:
            document["timestamp"] = datetime.fromtimestamp(record.created, UTC).isoformat()
        if self.hostname:
            document["hostname"] = self.hostname

        document["source"] = {"file": record.pathname, "line": record.lineno, "function": record.funcName}
        document["process"] = {"pid": record.process, "thread_name": record.threadName}

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, exc_tb = record.exc_info
            document["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": traceback.format_exception(exc_type, exc_value, exc_tb),
            }

        context = extra_fields(record)
        if context:
            document["context"] = context

        return json.dumps(document, default=str)


class ConsoleFormatter(logging.Formatter):
    """
    Single-line human-readable records, level coloured on a terminal

    Context is appended as ``[key=value, ...]``.
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True):
        super().__init__(fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
        self.use_colors = use_colors and sys.stderr.isatty()

    def formatMessage(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname) if self.use_colors else None
        if not color:
            return super().formatMessage(record)

        levelname = record.levelname
        record.levelname = f"{color}{levelname}{self.RESET}"
        try:
            return super().formatMessage(record)
        finally:
            record.levelname = levelname

    def format(self, record: logging.LogRecord) -> str:
        formatted = super().format(record)
        context = extra_fields(record)
        if context:
            formatted += " [" + ", ".join(f"{key}={value}" for key, value in context.items()) + "]"
        return formatted
