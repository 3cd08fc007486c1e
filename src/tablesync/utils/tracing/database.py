"""
Database operation tracing utilities.

Provides a context manager for tracing queries with the OpenTelemetry
database semantic attributes.
"""

from typing import Any

from opentelemetry import trace

from .context import trace_operation


def trace_database_query(query_type: str, table: str, database: str = "unknown") -> Any:
    """
    Context manager for tracing database queries.

    Args:
        query_type: Type of query (SELECT, COUNT, CATALOG, ...)
        table: Table name
        database: Database engine name

    Example:
        >>> with trace_database_query("COUNT", "customers", "postgresql"):
        ...     cursor.execute("SELECT COUNT(*) FROM customers")
    """
    return trace_operation(
        f"db.{query_type.lower()}",
        kind=trace.SpanKind.CLIENT,
        **{
            "db.operation": query_type,
            "db.sql.table": table,
            "db.system": database,
        }
    )
