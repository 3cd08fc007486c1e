"""
SQLite row source client (sqlite3).

One connection can serve both sides of a destination: every ORDER BY
carries an expression term, so SQLite sorts the full result before the
first row comes back and later deletes cannot disturb the stream.
"""

import logging
import re
import uuid
from decimal import Decimal
from typing import Any

from tablesync.model import ColumnClass
from tablesync.utils.database_types import DatabaseType

from .base import RowSourceClient, run_catalog_query

logger = logging.getLogger(__name__)

_SIZE = re.compile(r"\(\s*(\d+)\s*(?:,\s*(\d+)\s*)?\)")


def parse_declared_size(type_name: str) -> tuple[int | None, int | None]:
    """
    Extract precision and scale from a declared type such as DECIMAL(10,2).

    Args:
        type_name: Declared column type

    Returns:
        Tuple of (precision, scale), None where not declared
    """
    match = _SIZE.search(type_name or "")
    if not match:
        return None, None
    precision = int(match.group(1))
    scale = int(match.group(2)) if match.group(2) is not None else None
    return precision, scale


class SQLiteClient(RowSourceClient):
    """
    Client for SQLite tables.

    Columns are classified with SQLite's type affinity rules; declared
    DATE/TIME types compare as strings.
    """

    engine = DatabaseType.SQLITE

    def classify_type(
        self, type_name: str, precision: int | None = None
    ) -> tuple[ColumnClass | None, bool]:
        declared = (type_name or "").upper()

        if "INT" in declared:
            return ColumnClass.NUMERIC, False
        if any(token in declared for token in ("CHAR", "CLOB", "TEXT")) or not declared:
            return ColumnClass.STRING, True
        if "BLOB" in declared:
            return None, False
        if any(token in declared for token in ("REAL", "FLOA", "DOUB")):
            return ColumnClass.NUMERIC, False
        if "DATE" in declared or "TIME" in declared:
            return ColumnClass.STRING, False
        return ColumnClass.NUMERIC, False

    def _pragma(self, name: str, argument: str) -> str:
        quoted = self.quote(argument)
        if self.owner:
            return f"PRAGMA {self.quote(self.owner)}.{name}({quoted})"
        return f"PRAGMA {name}({quoted})"

    def _describe_columns(self) -> list[tuple[str, str, int | None, int | None]]:
        rows = run_catalog_query(self.connections.read, self._pragma("table_info", self.bare_table))
        columns = []
        for _cid, name, declared, _notnull, _default, _pk in rows:
            precision, scale = parse_declared_size(declared)
            columns.append((name, declared or "", precision, scale))
        return columns

    def _empty_last(self, expr: str) -> str:
        return f"COALESCE(LENGTH({expr}), 0) = 0"

    def _binary_order(self, expr: str) -> str:
        return f"{expr} COLLATE BINARY"

    def _text_expr(self, expr: str) -> str:
        return f"CAST({expr} AS TEXT)"

    def _limit_one_delete(self, table: str, condition: str) -> str:
        return (
            f"DELETE FROM {table} WHERE rowid IN "
            f"(SELECT rowid FROM {table} WHERE {condition} LIMIT 1)"
        )

    def _adapt_value(self, value: Any) -> Any:
        if isinstance(value, (Decimal, uuid.UUID)):
            return str(value)
        return value

    # sqlite3 manages transactions through isolation_level: None means
    # autocommit, anything else opens a transaction before the first write.
    def _get_autocommit(self, connection: Any) -> Any:
        return connection.isolation_level is None

    def _set_autocommit(self, connection: Any, value: Any) -> None:
        connection.isolation_level = None if value else "DEFERRED"
