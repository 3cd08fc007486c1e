"""
PostgreSQL row source client (psycopg2).
"""

import itertools
import logging
from typing import Any

from tablesync.utils.database_types import DatabaseType

from .base import RowSourceClient, run_catalog_query

logger = logging.getLogger(__name__)

_cursor_ids = itertools.count(1)


class PostgresClient(RowSourceClient):
    """
    Client for PostgreSQL tables.

    The ordered select runs through a named server-side cursor so the table
    is streamed in ``fetch_size`` batches instead of being buffered by libpq.
    The cursor is WITH HOLD so batch commits on the same connection keep it.
    """

    engine = DatabaseType.POSTGRESQL

    NUMERIC_TYPES = frozenset({
        "SMALLINT", "INTEGER", "INT", "BIGINT", "NUMERIC", "DECIMAL",
        "REAL", "DOUBLE", "DOUBLE PRECISION", "BOOLEAN", "OID",
    })
    CHARACTER_TYPES = frozenset({
        "CHARACTER", "CHARACTER VARYING", "CHAR", "VARCHAR", "TEXT", "NAME",
    })
    TEMPORAL_TYPES = frozenset({
        "DATE", "TIMESTAMP", "TIME", "INTERVAL", "UUID",
    })
    SKIP_TYPES = frozenset({
        "BYTEA", "JSON", "JSONB", "XML", "ARRAY", "TSVECTOR",
    })

    def _describe_columns(self) -> list[tuple[str, str, int | None, int | None]]:
        if self.owner:
            schema_clause = "lower(table_schema) = lower(%s)"
            params = [self.owner, self.bare_table]
        else:
            schema_clause = "table_schema = current_schema()"
            params = [self.bare_table]

        sql = (
            "SELECT column_name, data_type, "
            "COALESCE(character_maximum_length, numeric_precision, datetime_precision), "
            "numeric_scale "
            "FROM information_schema.columns "
            f"WHERE {schema_clause} AND lower(table_name) = lower(%s) "
            "ORDER BY ordinal_position"
        )
        return run_catalog_query(self.connections.read, sql, params)

    def _open_select_cursor(self, connection: Any, purpose: str = "select") -> Any:
        name = f"tablesync_{self.role}_{purpose}_{next(_cursor_ids)}"
        cursor = connection.cursor(name=name, withhold=True)
        cursor.itersize = self.fetch_size
        return cursor

    def _nulls_last(self, expr: str) -> list[str]:
        return [f"{expr} NULLS LAST"]

    def _binary_order(self, expr: str) -> str:
        return f'{expr} COLLATE "C"'

    def _text_expr(self, expr: str) -> str:
        return f"CAST({expr} AS TEXT)"

    def _limit_one_delete(self, table: str, condition: str) -> str:
        return (
            f"DELETE FROM {table} WHERE ctid IN "
            f"(SELECT ctid FROM {table} WHERE {condition} LIMIT 1)"
        )
