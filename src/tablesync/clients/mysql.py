"""
MySQL / MariaDB row source client (PyMySQL).

The ordered select uses an unbuffered cursor, which keeps the connection
busy until the stream is drained, so the destination must be passed as
{"read": conn1, "write": conn2} when it is MySQL.
"""

import logging
from typing import Any

from tablesync.utils.database_types import DatabaseType

from .base import RowSourceClient, run_catalog_query

logger = logging.getLogger(__name__)


class MySQLClient(RowSourceClient):
    """
    Client for MySQL and MariaDB tables.

    Character columns sort on their binary image, and ENUM/SET columns on
    their text, so the server's order matches the row comparator.
    MEDIUMTEXT and LONGTEXT are treated as LOBs because the server sorts
    them on a truncated prefix.
    """

    engine = DatabaseType.MYSQL

    NUMERIC_TYPES = frozenset({
        "TINYINT", "SMALLINT", "MEDIUMINT", "INT", "INTEGER", "BIGINT",
        "DECIMAL", "NUMERIC", "FLOAT", "DOUBLE", "REAL", "YEAR",
    })
    CHARACTER_TYPES = frozenset({
        "CHAR", "VARCHAR", "TINYTEXT", "TEXT", "ENUM", "SET",
    })
    TEMPORAL_TYPES = frozenset({
        "DATE", "DATETIME", "TIMESTAMP", "TIME",
    })
    SKIP_TYPES = frozenset({
        "BINARY", "VARBINARY", "TINYBLOB", "BLOB", "MEDIUMBLOB", "LONGBLOB",
        "MEDIUMTEXT", "LONGTEXT", "JSON", "GEOMETRY", "BIT",
    })
    TEXT_CAST_TYPES = frozenset({"ENUM", "SET"})

    def _describe_columns(self) -> list[tuple[str, str, int | None, int | None]]:
        if self.owner:
            schema_clause = "table_schema = %s"
            params = [self.owner, self.bare_table]
        else:
            schema_clause = "table_schema = DATABASE()"
            params = [self.bare_table]

        sql = (
            "SELECT column_name, data_type, "
            "COALESCE(character_maximum_length, numeric_precision, datetime_precision), "
            "numeric_scale "
            "FROM information_schema.columns "
            f"WHERE {schema_clause} AND table_name = %s "
            "ORDER BY ordinal_position"
        )
        return run_catalog_query(self.connections.read, sql, params)

    def _open_select_cursor(self, connection: Any, purpose: str = "select") -> Any:
        if type(connection).__module__.startswith("pymysql"):
            import pymysql.cursors

            return connection.cursor(pymysql.cursors.SSCursor)
        return connection.cursor()

    def _empty_last(self, expr: str) -> str:
        return f"COALESCE(CHAR_LENGTH({expr}), 0) = 0"

    def _binary_order(self, expr: str) -> str:
        return f"CAST({expr} AS BINARY)"

    def _text_expr(self, expr: str) -> str:
        return f"CAST({expr} AS CHAR)"

    def _limit_one_delete(self, table: str, condition: str) -> str:
        return f"DELETE FROM {table} WHERE {condition} LIMIT 1"

    def _get_autocommit(self, connection: Any) -> Any:
        getter = getattr(connection, "get_autocommit", None)
        if callable(getter):
            return getter()
        return super()._get_autocommit(connection)

    def _set_autocommit(self, connection: Any, value: Any) -> None:
        setter = getattr(connection, "autocommit", None)
        if callable(setter):
            setter(value)
        else:
            connection.autocommit = value
