"""
Database type enumeration for type-safe engine identification.

Engines are detected from the DB-API connection object handed to the
synchronizer, so callers never have to name the engine explicitly.
"""

from enum import Enum
from typing import Any


class DatabaseType(str, Enum):
    """
    Enumeration of supported database engines.

    Inherits from str for JSON serialization compatibility and
    easy comparison with string values.
    """

    POSTGRESQL = "postgresql"
    SQLSERVER = "sqlserver"
    MYSQL = "mysql"
    ORACLE = "oracle"
    SQLITE = "sqlite"
    UNKNOWN = "unknown"

    @classmethod
    def from_connection(cls, connection: Any) -> "DatabaseType":
        """
        Detect database type from the connection's driver module.

        Falls back to the class name, which is what test doubles set.

        Args:
            connection: DB-API connection object

        Returns:
            DatabaseType enum value
        """
        module = (type(connection).__module__ or "").lower()
        class_name = connection.__class__.__name__.lower()

        for hint in (module, class_name):
            if "psycopg" in hint or "postgres" in hint:
                return cls.POSTGRESQL
            if "pyodbc" in hint or "odbc" in hint or "sqlserver" in hint:
                return cls.SQLSERVER
            if "pymysql" in hint or "mysql" in hint:
                return cls.MYSQL
            if "oracle" in hint or "cx_oracle" in hint:
                return cls.ORACLE
            if "sqlite" in hint:
                return cls.SQLITE

        return cls.UNKNOWN

    def get_placeholder(self, index: int = 0) -> str:
        """
        Get parameter placeholder for this database type.

        Args:
            index: Parameter index (0-based)

        Returns:
            Placeholder string in the driver's paramstyle
        """
        if self in (DatabaseType.POSTGRESQL, DatabaseType.MYSQL):
            return "%s"
        elif self == DatabaseType.ORACLE:
            return f":{index + 1}"
        else:
            return "?"

    def quote_identifier(self, identifier: str) -> str:
        """
        Quote identifier based on database type.

        Args:
            identifier: Column or table name

        Returns:
            Quoted identifier string
        """
        if self == DatabaseType.SQLSERVER:
            return "[" + identifier.replace("]", "]]") + "]"
        elif self == DatabaseType.MYSQL:
            return "`" + identifier.replace("`", "``") + "`"
        elif self == DatabaseType.UNKNOWN:
            return identifier
        else:
            return '"' + identifier.replace('"', '""') + '"'
