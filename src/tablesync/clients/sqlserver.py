"""
SQL Server row source client (pyodbc).

Reading and writing on one connection needs MARS
(``MARS_Connection=yes``); otherwise pass the destination as
{"read": conn1, "write": conn2}.
"""

import logging
from typing import Any

from tablesync.utils.database_types import DatabaseType

from .base import RowSourceClient, run_catalog_query

logger = logging.getLogger(__name__)


class SQLServerClient(RowSourceClient):
    """
    Client for SQL Server tables.

    Character columns sort under Latin1_General_BIN2 so the server's order
    is the code point order the row comparator uses. A destination with an
    identity column gets IDENTITY_INSERT enabled for the run.
    """

    engine = DatabaseType.SQLSERVER

    NUMERIC_TYPES = frozenset({
        "TINYINT", "SMALLINT", "INT", "BIGINT", "BIT", "DECIMAL", "NUMERIC",
        "MONEY", "SMALLMONEY", "FLOAT", "REAL",
    })
    CHARACTER_TYPES = frozenset({
        "CHAR", "VARCHAR", "NCHAR", "NVARCHAR", "UNIQUEIDENTIFIER",
    })
    TEMPORAL_TYPES = frozenset({
        "DATE", "DATETIME", "DATETIME2", "SMALLDATETIME", "DATETIMEOFFSET", "TIME",
    })
    SKIP_TYPES = frozenset({
        "TEXT", "NTEXT", "IMAGE", "BINARY", "VARBINARY", "XML", "TIMESTAMP",
        "ROWVERSION", "SQL_VARIANT", "GEOGRAPHY", "GEOMETRY", "HIERARCHYID",
    })
    TEXT_CAST_TYPES = frozenset({"UNIQUEIDENTIFIER"})

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._identity_insert = False

    def _describe_columns(self) -> list[tuple[str, str, int | None, int | None]]:
        if self.owner:
            schema_clause = "TABLE_SCHEMA = ?"
            params = [self.owner, self.bare_table]
        else:
            schema_clause = "TABLE_SCHEMA = SCHEMA_NAME()"
            params = [self.bare_table]

        sql = (
            "SELECT COLUMN_NAME, DATA_TYPE, "
            "COALESCE(CHARACTER_MAXIMUM_LENGTH, NUMERIC_PRECISION, DATETIME_PRECISION), "
            "NUMERIC_SCALE "
            "FROM INFORMATION_SCHEMA.COLUMNS "
            f"WHERE {schema_clause} AND TABLE_NAME = ? "
            "ORDER BY ORDINAL_POSITION"
        )
        return run_catalog_query(self.connections.read, sql, params)

    def _nulls_last(self, expr: str) -> list[str]:
        return [f"CASE WHEN {expr} IS NULL THEN 1 ELSE 0 END", expr]

    def _empty_last(self, expr: str) -> str:
        return f"CASE WHEN {expr} IS NULL OR DATALENGTH({expr}) = 0 THEN 1 ELSE 0 END"

    def _binary_order(self, expr: str) -> str:
        return f"{expr} COLLATE Latin1_General_BIN2"

    def _text_expr(self, expr: str) -> str:
        return f"CAST({expr} AS NVARCHAR(4000))"

    def _limit_one_delete(self, table: str, condition: str) -> str:
        return f"DELETE TOP (1) FROM {table} WHERE {condition}"

    def _begin(self) -> None:
        super()._begin()
        rows = run_catalog_query(
            self.connections.write,
            "SELECT OBJECTPROPERTY(OBJECT_ID(?), 'TableHasIdentity')",
            [self.table],
        )
        if rows and rows[0][0] == 1:
            cursor = self.connections.write.cursor()
            try:
                cursor.execute(f"SET IDENTITY_INSERT {self.table} ON")
            finally:
                cursor.close()
            self._identity_insert = True
            logger.debug(f"{self!r}: IDENTITY_INSERT enabled")

    def _restore_autocommit(self) -> None:
        if self._identity_insert:
            cursor = self.connections.write.cursor()
            try:
                cursor.execute(f"SET IDENTITY_INSERT {self.table} OFF")
            finally:
                cursor.close()
            self._identity_insert = False
        super()._restore_autocommit()
