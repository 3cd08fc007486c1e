"""
Logger adapter that carries per-run context.

The synchronizer creates one ContextLogger per run so that every message
names the tables being synchronized.
"""

import logging
from typing import Any

# Keyword arguments understood by Logger._log itself
LOG_KWARGS = frozenset({"exc_info", "stack_info", "stacklevel", "extra"})


class ContextLogger(logging.LoggerAdapter):
    """
    Adapter merging run context and per-call keywords into ``extra``

    Usage:
        logger = ContextLogger(__name__, source_table="a", dest_table="b")
        logger.info("Merge finished", inserts=3)
        # The record carries source_table, dest_table and inserts
    """

    def __init__(self, name: str, **context):
        super().__init__(logging.getLogger(name), context)

    def process(self, msg: Any, kwargs: dict[str, Any]) -> tuple[Any, dict[str, Any]]:
        fields = {key: kwargs.pop(key) for key in list(kwargs) if key not in LOG_KWARGS}
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {}), **fields}
        return msg, kwargs

    @property
    def context(self) -> dict[str, Any]:
        """Copy of the bound context"""
        return dict(self.extra)

    def bind(self, **context) -> "ContextLogger":
        """
        Derive a logger with additional context.

        Args:
            **context: Key-value pairs added to (or replacing) the current context

        Returns:
            New ContextLogger on the same underlying logger
        """
        return ContextLogger(self.logger.name, **{**self.extra, **context})
