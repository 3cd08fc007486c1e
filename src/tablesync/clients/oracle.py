"""
Oracle row source client (python-oracledb).
"""

import logging
from typing import Any

from tablesync.utils.database_types import DatabaseType

from .base import RowSourceClient, run_catalog_query

logger = logging.getLogger(__name__)

# Binary comparisons and sorts, so ORDER BY agrees with code point order
SESSION_SETUP = (
    "ALTER SESSION SET NLS_SORT = BINARY",
    "ALTER SESSION SET NLS_COMP = BINARY",
)


class OracleClient(RowSourceClient):
    """
    Client for Oracle tables.

    Oracle stores '' as NULL, so character columns need no separate
    empty-string ordering term.
    """

    engine = DatabaseType.ORACLE

    NUMERIC_TYPES = frozenset({
        "NUMBER", "FLOAT", "BINARY_FLOAT", "BINARY_DOUBLE", "INTEGER",
    })
    CHARACTER_TYPES = frozenset({
        "VARCHAR2", "NVARCHAR2", "VARCHAR", "CHAR", "NCHAR",
    })
    TEMPORAL_TYPES = frozenset({
        "DATE", "TIMESTAMP",
    })
    SKIP_TYPES = frozenset({
        "CLOB", "NCLOB", "BLOB", "BFILE", "LONG", "LONG RAW", "RAW",
        "ROWID", "UROWID", "XMLTYPE",
    })

    def _prepare_session(self, connection: Any) -> None:
        cursor = connection.cursor()
        try:
            for statement in SESSION_SETUP:
                cursor.execute(statement)
        finally:
            cursor.close()

    def _describe_columns(self) -> list[tuple[str, str, int | None, int | None]]:
        if self.owner:
            owner_clause = "owner = UPPER(:1)"
            params = [self.owner, self.bare_table]
            table_mark = ":2"
        else:
            owner_clause = "owner = SYS_CONTEXT('USERENV', 'CURRENT_SCHEMA')"
            params = [self.bare_table]
            table_mark = ":1"

        sql = (
            "SELECT column_name, data_type, "
            "COALESCE(data_precision, NULLIF(char_length, 0)), data_scale "
            "FROM all_tab_columns "
            f"WHERE {owner_clause} AND table_name = UPPER({table_mark}) "
            "ORDER BY column_id"
        )
        return run_catalog_query(self.connections.read, sql, params)

    def _open_select_cursor(self, connection: Any, purpose: str = "select") -> Any:
        cursor = connection.cursor()
        cursor.arraysize = self.fetch_size
        cursor.prefetchrows = self.fetch_size + 1
        return cursor

    def _nulls_last(self, expr: str) -> list[str]:
        return [f"{expr} NULLS LAST"]

    def _empty_last(self, expr: str) -> str:
        return f"CASE WHEN {expr} IS NULL THEN 1 ELSE 0 END"

    def _binary_order(self, expr: str) -> str:
        return f"NLSSORT({expr}, 'NLS_SORT=BINARY')"

    def _text_expr(self, expr: str) -> str:
        return f"TO_CHAR({expr})"

    def _limit_one_delete(self, table: str, condition: str) -> str:
        return f"DELETE FROM {table} WHERE {condition} AND ROWNUM = 1"
