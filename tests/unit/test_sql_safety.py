"""
Unit tests for identifier validation and engine detection

Tests verify:
- Injection attempts in identifiers are rejected
- Column list options are split consistently
- Engine detection, placeholders and identifier quoting per engine
"""

import sqlite3

import pytest

from tablesync.utils.database_types import DatabaseType
from tablesync.utils.sql_safety import (
    quote_literal,
    split_name_list,
    split_schema_table,
    validate_identifier,
    validate_schema_table,
)


class TestValidateIdentifier:
    """Test column and key name validation"""

    @pytest.mark.parametrize("name", ["id", "_hidden", "Amount2", "tot$al", "col#1"])
    def test_valid(self, name):
        """Test plain identifiers pass"""
        validate_identifier(name)

    @pytest.mark.parametrize(
        "name",
        [
            "id; DROP TABLE users--",
            "name' OR '1'='1",
            "1column",
            "first name",
            "naïve",
            "a.b",
        ],
    )
    def test_invalid(self, name):
        """Test injection attempts and non-ASCII names fail"""
        with pytest.raises(ValueError, match="Invalid SQL identifier"):
            validate_identifier(name)

    def test_empty(self):
        """Test empty identifiers fail"""
        with pytest.raises(ValueError, match="cannot be empty"):
            validate_identifier("")


class TestSchemaTable:
    """Test table name validation and splitting"""

    def test_split_qualified(self):
        """Test schema.table splits into owner and table"""
        assert split_schema_table("sales.orders") == ("sales", "orders")

    def test_split_bare(self):
        """Test an unqualified table has no owner"""
        assert split_schema_table("orders") == (None, "orders")

    @pytest.mark.parametrize("name", ["a.b.c", "orders;", "sales.", ".orders", "orders --"])
    def test_invalid(self, name):
        """Test malformed table names fail"""
        with pytest.raises(ValueError, match="Invalid table name"):
            validate_schema_table(name)

    def test_empty(self):
        """Test empty table names fail"""
        with pytest.raises(ValueError, match="cannot be empty"):
            split_schema_table("")


class TestSplitNameList:
    """Test column list option parsing"""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (None, []),
            ("", []),
            ("a", ["a"]),
            ("a, b;c  d", ["a", "b", "c", "d"]),
            (["a", " b ", ""], ["a", "b"]),
            (("x",), ["x"]),
        ],
    )
    def test_split(self, value, expected):
        """Test strings and sequences normalize to the same shape"""
        assert split_name_list(value) == expected


class TestQuoteLiteral:
    """Test literal quoting for masked column values"""

    def test_plain(self):
        assert quote_literal("REDACTED") == "'REDACTED'"

    def test_embedded_quote_doubled(self):
        """Test quotes cannot terminate the literal"""
        assert quote_literal("O'Brien") == "'O''Brien'"


class FakePostgresConnection:
    """Connection double recognised by its class name"""


class TestDatabaseType:
    """Test engine detection and dialect helpers"""

    def test_detects_sqlite_by_module(self):
        """Test the sqlite3 driver is recognised"""
        conn = sqlite3.connect(":memory:")
        try:
            assert DatabaseType.from_connection(conn) is DatabaseType.SQLITE
        finally:
            conn.close()

    def test_detects_by_class_name(self):
        """Test detection falls back to the class name"""
        assert DatabaseType.from_connection(FakePostgresConnection()) is DatabaseType.POSTGRESQL

    def test_unknown(self):
        """Test unrecognised objects are UNKNOWN"""
        assert DatabaseType.from_connection(object()) is DatabaseType.UNKNOWN

    @pytest.mark.parametrize(
        "db_type,expected",
        [
            (DatabaseType.POSTGRESQL, "%s"),
            (DatabaseType.MYSQL, "%s"),
            (DatabaseType.ORACLE, ":3"),
            (DatabaseType.SQLSERVER, "?"),
            (DatabaseType.SQLITE, "?"),
        ],
    )
    def test_placeholders(self, db_type, expected):
        """Test each driver's paramstyle"""
        assert db_type.get_placeholder(2) == expected

    @pytest.mark.parametrize(
        "db_type,expected",
        [
            (DatabaseType.POSTGRESQL, '"my""col"'),
            (DatabaseType.ORACLE, '"my""col"'),
            (DatabaseType.SQLITE, '"my""col"'),
            (DatabaseType.SQLSERVER, '[my"col]'),
            (DatabaseType.MYSQL, '`my"col`'),
        ],
    )
    def test_quote_identifier(self, db_type, expected):
        """Test quoting escapes the engine's quote character"""
        assert db_type.quote_identifier('my"col') == expected

    def test_quote_identifier_escapes_brackets_and_backticks(self):
        assert DatabaseType.SQLSERVER.quote_identifier("a]b") == "[a]]b]"
        assert DatabaseType.MYSQL.quote_identifier("a`b") == "`a``b`"

    def test_string_comparison(self):
        """Test enum values compare equal to their names"""
        assert DatabaseType.POSTGRESQL == "postgresql"
