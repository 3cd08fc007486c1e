"""
Streaming merge-diff synchronization of database tables.

Usage:
    from tablesync import TableSync

    result = TableSync().sync_tables(
        source_db=src_conn,
        source_table="dbo.customers",
        dest_db=dest_conn,
        dest_table="public.customers",
    )
"""

from .clients import create_client
from .driver import TableSync
from .exceptions import (
    ClientError,
    OrderingError,
    SchemaMismatchError,
    SyncFailedError,
    TableSyncError,
    UnsupportedDatabaseError,
)
from .options import SyncOptions, SyncResult
from .unique_keys import UniqueKeyIntrospector

__version__ = "1.0.0"

__all__ = [
    "ClientError",
    "OrderingError",
    "SchemaMismatchError",
    "SyncFailedError",
    "SyncOptions",
    "SyncResult",
    "TableSync",
    "TableSyncError",
    "UniqueKeyIntrospector",
    "UnsupportedDatabaseError",
    "create_client",
]
