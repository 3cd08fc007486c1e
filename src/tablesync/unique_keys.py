"""
Unique key discovery from engine catalogs.

Delete-by-key before each insert needs the destination's unique key sets.
They are read once per (connection, owner, table) and cached on the
introspector, which each TableSync instance owns. Cache entries live as
long as their connection object.
"""

import logging
import weakref
from collections.abc import Callable
from typing import Any

from opentelemetry import trace

from tablesync.clients.base import run_catalog_query
from tablesync.exceptions import UnsupportedDatabaseError
from tablesync.utils.database_types import DatabaseType
from tablesync.utils.tracing import add_span_attributes, trace_operation

logger = logging.getLogger(__name__)

KeyRows = list[tuple[str, str]]

POSTGRES_UNIQUE_KEYS = """
SELECT i.relname, a.attname
  FROM pg_index x
  JOIN pg_class t ON t.oid = x.indrelid
  JOIN pg_class i ON i.oid = x.indexrelid
  JOIN pg_namespace n ON n.oid = t.relnamespace
  JOIN LATERAL unnest(x.indkey::int2[]) WITH ORDINALITY AS k(attnum, ord) ON true
  JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = k.attnum
 WHERE x.indisunique
   AND x.indpred IS NULL
   AND NOT (0 = ANY (x.indkey::int2[]))
   AND {owner_clause}
   AND lower(t.relname) = lower(%s)
 ORDER BY i.relname, k.ord
"""

MYSQL_UNIQUE_KEYS = """
SELECT index_name, column_name
  FROM information_schema.statistics
 WHERE non_unique = 0
   AND column_name IS NOT NULL
   AND {owner_clause}
   AND lower(table_name) = lower(%s)
 ORDER BY index_name, seq_in_index
"""

SQLSERVER_UNIQUE_KEYS = """
SELECT i.name, c.name
  FROM sys.indexes i
  JOIN sys.index_columns ic ON ic.object_id = i.object_id AND ic.index_id = i.index_id
  JOIN sys.columns c ON c.object_id = ic.object_id AND c.column_id = ic.column_id
 WHERE i.is_unique = 1
   AND i.has_filter = 0
   AND ic.is_included_column = 0
   AND i.object_id = OBJECT_ID(?)
 ORDER BY i.name, ic.key_ordinal
"""

ORACLE_UNIQUE_INDEXES = """
SELECT 'IDX-' || a.index_name, a.column_name
  FROM all_ind_columns a
  JOIN all_indexes b ON a.index_owner = b.owner AND a.index_name = b.index_name
 WHERE b.uniqueness = 'UNIQUE'
   AND a.table_owner = {owner}
   AND a.table_name = UPPER(:tab)
 ORDER BY a.index_name, a.column_position
"""

ORACLE_PRIMARY_KEYS = """
SELECT 'CONS-' || a.constraint_name, a.column_name
  FROM all_cons_columns a
  JOIN all_constraints b ON a.owner = b.owner AND a.constraint_name = b.constraint_name
 WHERE b.constraint_type = 'P'
   AND a.owner = {owner}
   AND a.table_name = UPPER(:tab)
 ORDER BY a.constraint_name, a.position
"""


def _postgres_keys(connection: Any, owner: str | None, table: str) -> KeyRows:
    if owner:
        sql = POSTGRES_UNIQUE_KEYS.format(owner_clause="lower(n.nspname) = lower(%s)")
        return run_catalog_query(connection, sql, [owner, table])
    sql = POSTGRES_UNIQUE_KEYS.format(owner_clause="n.nspname = current_schema()")
    return run_catalog_query(connection, sql, [table])


def _mysql_keys(connection: Any, owner: str | None, table: str) -> KeyRows:
    if owner:
        sql = MYSQL_UNIQUE_KEYS.format(owner_clause="lower(table_schema) = lower(%s)")
        return run_catalog_query(connection, sql, [owner, table])
    sql = MYSQL_UNIQUE_KEYS.format(owner_clause="table_schema = DATABASE()")
    return run_catalog_query(connection, sql, [table])


def _sqlserver_keys(connection: Any, owner: str | None, table: str) -> KeyRows:
    name = f"{owner}.{table}" if owner else table
    return run_catalog_query(connection, SQLSERVER_UNIQUE_KEYS, [name])


def _oracle_keys(connection: Any, owner: str | None, table: str) -> KeyRows:
    if owner:
        owner_sql = "UPPER(:own)"
        params: Any = {"own": owner, "tab": table}
    else:
        owner_sql = "SYS_CONTEXT('USERENV', 'CURRENT_SCHEMA')"
        params = {"tab": table}

    rows: KeyRows = []
    for template in (ORACLE_UNIQUE_INDEXES, ORACLE_PRIMARY_KEYS):
        rows.extend(run_catalog_query(connection, template.format(owner=owner_sql), params))
    return rows


def _sqlite_keys(connection: Any, owner: str | None, table: str) -> KeyRows:
    quote = DatabaseType.SQLITE.quote_identifier
    prefix = f"{quote(owner)}." if owner else ""

    rows: KeyRows = []

    # An INTEGER PRIMARY KEY aliases the rowid and has no index of its own
    table_info = run_catalog_query(connection, f"PRAGMA {prefix}table_info({quote(table)})")
    pk_columns = sorted((pk, name) for _cid, name, _type, _nn, _dflt, pk in table_info if pk)
    rows.extend(("PRIMARY", name) for _pk, name in pk_columns)

    index_list = run_catalog_query(connection, f"PRAGMA {prefix}index_list({quote(table)})")
    for index_row in index_list:
        index_name, unique = index_row[1], index_row[2]
        partial = index_row[4] if len(index_row) > 4 else 0
        if not unique or partial:
            continue
        info = run_catalog_query(connection, f"PRAGMA {prefix}index_info({quote(index_name)})")
        columns = [name for _seqno, _cid, name in sorted(info)]
        if any(name is None for name in columns):
            continue
        rows.extend((index_name, name) for name in columns)
    return rows


CATALOG_READERS: dict[DatabaseType, Callable[[Any, str | None, str], KeyRows]] = {
    DatabaseType.POSTGRESQL: _postgres_keys,
    DatabaseType.MYSQL: _mysql_keys,
    DatabaseType.SQLSERVER: _sqlserver_keys,
    DatabaseType.ORACLE: _oracle_keys,
    DatabaseType.SQLITE: _sqlite_keys,
}


def group_key_rows(rows: KeyRows) -> dict[str, list[str]]:
    """
    Group (key name, column) rows into key sets, dropping duplicate column lists.

    Args:
        rows: Catalog rows ordered by key name and column position

    Returns:
        Mapping of key name to lower-cased column names
    """
    grouped: dict[str, list[str]] = {}
    for key_name, column in rows:
        grouped.setdefault(key_name, []).append(column.lower())

    keys: dict[str, list[str]] = {}
    seen: set[tuple[str, ...]] = set()
    for key_name, columns in grouped.items():
        signature = tuple(columns)
        if signature in seen:
            continue
        seen.add(signature)
        keys[key_name] = columns
    return keys


class UniqueKeyIntrospector:
    """
    Reads and caches unique key sets per (connection, owner, table).

    Usage:
        keys = UniqueKeyIntrospector().get_unique_keys(conn, "public", "customers")
        # {"customers_pkey": ["id"], "customers_email_key": ["email"]}
    """

    def __init__(self):
        self._cache: weakref.WeakKeyDictionary[Any, dict[tuple[str | None, str], dict[str, list[str]]]] = (
            weakref.WeakKeyDictionary()
        )
        # handles that cannot be weakly referenced, pinned alongside their entries
        self._pinned: dict[int, tuple[Any, dict[tuple[str | None, str], dict[str, list[str]]]]] = {}

    def _entries(self, connection: Any) -> dict[tuple[str | None, str], dict[str, list[str]]]:
        try:
            return self._cache.setdefault(connection, {})
        except TypeError:
            return self._pinned.setdefault(id(connection), (connection, {}))[1]

    def get_unique_keys(
        self,
        connection: Any,
        owner: str | None,
        table: str,
        engine: DatabaseType | str | None = None,
    ) -> dict[str, list[str]]:
        """
        Unique key sets of a table.

        Args:
            connection: DB-API connection to read the catalog through
            owner: Schema / owner, None for the connection's current schema
            table: Bare table name
            engine: Engine override, skips detection

        Returns:
            Mapping of key name to lower-cased columns, in catalog order

        Raises:
            UnsupportedDatabaseError: If the engine has no catalog reader
        """
        entries = self._entries(connection)
        cache_key = (owner.lower() if owner else None, table.lower())
        if cache_key in entries:
            return {name: list(cols) for name, cols in entries[cache_key].items()}

        engine_type = DatabaseType(engine) if engine else DatabaseType.from_connection(connection)
        reader = CATALOG_READERS.get(engine_type)
        if reader is None:
            raise UnsupportedDatabaseError(
                f"unique key lookup not supported for "
                f"{type(connection).__module__}.{type(connection).__name__}"
            )

        with trace_operation(
            "tablesync.unique_keys",
            kind=trace.SpanKind.CLIENT,
            table=table,
            owner=owner,
            **{"db.system": engine_type.value},
        ):
            keys = group_key_rows(reader(connection, owner, table))
            add_span_attributes(key_count=len(keys))

        logger.debug(f"Unique keys for {owner or '<current>'}.{table}: {keys}")
        entries[cache_key] = keys
        return {name: list(cols) for name, cols in keys.items()}

    def clear_cache(self) -> None:
        self._cache.clear()
        self._pinned.clear()
