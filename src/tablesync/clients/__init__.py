"""
Row source clients, one per database engine.

Usage:
    from tablesync.clients import create_client

    client = create_client(pg_conn, table="public.customers", role="dest")
    client.init()
"""

from typing import Any

from tablesync.exceptions import UnsupportedDatabaseError
from tablesync.model import ConnectionPair
from tablesync.utils.database_types import DatabaseType

from .base import DEST, SOURCE, RowSourceClient
from .mysql import MySQLClient
from .oracle import OracleClient
from .postgres import PostgresClient
from .sqlite import SQLiteClient
from .sqlserver import SQLServerClient

CLIENT_CLASSES: dict[DatabaseType, type[RowSourceClient]] = {
    DatabaseType.POSTGRESQL: PostgresClient,
    DatabaseType.SQLSERVER: SQLServerClient,
    DatabaseType.MYSQL: MySQLClient,
    DatabaseType.ORACLE: OracleClient,
    DatabaseType.SQLITE: SQLiteClient,
}


def detect_engine(db: Any) -> DatabaseType:
    """
    Detect the engine behind a connection handle.

    Args:
        db: DB-API connection, ConnectionPair or {"read", "write"} mapping

    Returns:
        DatabaseType of the read connection
    """
    return DatabaseType.from_connection(ConnectionPair.from_handle(db).read)


def create_client(
    db: Any,
    table: str,
    role: str = SOURCE,
    engine: DatabaseType | str | None = None,
    **options,
) -> RowSourceClient:
    """
    Allocate the client matching a connection's engine.

    Args:
        db: DB-API connection, ConnectionPair or {"read", "write"} mapping
        table: Table name, optionally schema qualified
        role: "source" or "dest"
        engine: Engine override, skips detection
        **options: Remaining RowSourceClient options

    Returns:
        Uninitialized client

    Raises:
        UnsupportedDatabaseError: If no client supports the engine
    """
    engine_type = DatabaseType(engine) if engine else detect_engine(db)
    client_class = CLIENT_CLASSES.get(engine_type)
    if client_class is None:
        handle = ConnectionPair.from_handle(db).read
        raise UnsupportedDatabaseError(
            f"no sync client for {type(handle).__module__}.{type(handle).__name__}"
        )
    return client_class(db, table, role=role, **options)


__all__ = [
    "CLIENT_CLASSES",
    "DEST",
    "SOURCE",
    "MySQLClient",
    "OracleClient",
    "PostgresClient",
    "RowSourceClient",
    "SQLiteClient",
    "SQLServerClient",
    "create_client",
    "detect_engine",
]
