"""
Unit tests for unique key discovery
"""

import gc
import sqlite3
from unittest.mock import MagicMock, Mock, patch

import pytest

from tablesync.exceptions import UnsupportedDatabaseError
from tablesync.unique_keys import UniqueKeyIntrospector, group_key_rows
from tablesync.utils.database_types import DatabaseType


class TestGroupKeyRows:
    """Test catalog row grouping"""

    def test_groups_in_order(self):
        """Test rows are grouped per key with column order kept"""
        rows = [("pk", "ID"), ("uq_name", "Last"), ("uq_name", "First")]
        assert group_key_rows(rows) == {"pk": ["id"], "uq_name": ["last", "first"]}

    def test_duplicate_column_lists_reported_once(self):
        """Test an index duplicating a constraint is dropped"""
        rows = [("CONS-PK_T", "ID"), ("IDX-PK_T", "ID"), ("IDX-T_CODE", "CODE")]
        assert group_key_rows(rows) == {"CONS-PK_T": ["id"], "IDX-T_CODE": ["code"]}


class TestSQLiteKeys:
    """Test discovery against a real SQLite catalog"""

    @pytest.fixture
    def conn(self):
        conn = sqlite3.connect(":memory:")
        conn.execute(
            "CREATE TABLE accounts ("
            " id INTEGER PRIMARY KEY,"
            " email TEXT UNIQUE,"
            " region TEXT, code TEXT, note TEXT)"
        )
        conn.execute("CREATE UNIQUE INDEX accounts_region_code ON accounts (region, code)")
        conn.execute("CREATE UNIQUE INDEX accounts_note_partial ON accounts (note) WHERE note IS NOT NULL")
        conn.execute("CREATE INDEX accounts_plain ON accounts (note)")
        yield conn
        conn.close()

    def test_primary_and_unique_indexes(self, conn):
        """Test rowid primary key, constraint and index keys; partial and plain indexes skipped"""
        keys = UniqueKeyIntrospector().get_unique_keys(conn, None, "accounts")

        assert keys["PRIMARY"] == ["id"]
        assert keys["accounts_region_code"] == ["region", "code"]
        assert ["email"] in keys.values()
        assert len(keys) == 3

    def test_composite_primary_key(self):
        """Test multi-column primary keys keep their declared order"""
        conn = sqlite3.connect(":memory:")
        conn.execute("CREATE TABLE lines (line INTEGER, order_id INTEGER, PRIMARY KEY (order_id, line))")

        keys = UniqueKeyIntrospector().get_unique_keys(conn, None, "lines")

        assert keys == {"PRIMARY": ["order_id", "line"]}
        conn.close()

    def test_table_without_keys(self, conn):
        """Test a keyless table yields no key sets"""
        conn.execute("CREATE TABLE log (msg TEXT)")
        assert UniqueKeyIntrospector().get_unique_keys(conn, None, "log") == {}


class TestUniqueKeyIntrospector:
    """Test engine dispatch and caching"""

    def test_results_are_cached(self):
        """Test the catalog is read once per connection and table"""
        introspector = UniqueKeyIntrospector()
        conn = Mock()
        reader = Mock(return_value=[("pk", "id")])

        with patch.dict("tablesync.unique_keys.CATALOG_READERS", {DatabaseType.POSTGRESQL: reader}):
            first = introspector.get_unique_keys(conn, "public", "t", engine="postgresql")
            first["pk"].append("mutated")
            second = introspector.get_unique_keys(conn, "PUBLIC", "T", engine="postgresql")

        assert reader.call_count == 1
        assert second == {"pk": ["id"]}

    def test_clear_cache(self):
        """Test clear_cache forces a new catalog read"""
        introspector = UniqueKeyIntrospector()
        conn = Mock()
        reader = Mock(return_value=[])

        with patch.dict("tablesync.unique_keys.CATALOG_READERS", {DatabaseType.POSTGRESQL: reader}):
            introspector.get_unique_keys(conn, None, "t", engine="postgresql")
            introspector.clear_cache()
            introspector.get_unique_keys(conn, None, "t", engine="postgresql")

        assert reader.call_count == 2

    def test_unsupported_engine(self):
        """Test unknown connections fail loudly"""
        with pytest.raises(UnsupportedDatabaseError, match="unique key lookup not supported"):
            UniqueKeyIntrospector().get_unique_keys(Mock(), None, "t")

    def test_postgres_query_uses_current_schema(self):
        """Test an unqualified table is looked up in the current schema"""
        conn = MagicMock()
        cursor = conn.cursor.return_value
        cursor.fetchall.return_value = [("t_pkey", "id")]

        keys = UniqueKeyIntrospector().get_unique_keys(conn, None, "t", engine="postgresql")

        sql, params = cursor.execute.call_args.args
        assert "n.nspname = current_schema()" in sql
        assert params == ("t",)
        assert keys == {"t_pkey": ["id"]}

    def test_oracle_named_binds(self):
        """Test Oracle lookups read both indexes and primary key constraints"""
        conn = MagicMock()
        cursor = conn.cursor.return_value
        cursor.fetchall.side_effect = [[("IDX-T_PK", "ID")], [("CONS-T_PK", "ID")]]

        keys = UniqueKeyIntrospector().get_unique_keys(conn, "scott", "t", engine="oracle")

        assert cursor.execute.call_count == 2
        assert cursor.execute.call_args.args[1] == {"own": "scott", "tab": "t"}
        assert keys == {"IDX-T_PK": ["id"]}

    def test_new_connection_rereads_catalog(self):
        """Test keys cached for a closed connection never answer for a later one"""
        introspector = UniqueKeyIntrospector()
        conn = sqlite3.connect(":memory:")
        conn.execute("CREATE TABLE t (id INTEGER, name TEXT UNIQUE)")
        assert list(introspector.get_unique_keys(conn, None, "t").values()) == [["name"]]
        conn.close()
        del conn
        gc.collect()

        for _ in range(5):
            conn = sqlite3.connect(":memory:")
            conn.execute("CREATE TABLE t (id INTEGER PRIMARY KEY, name TEXT)")

            assert introspector.get_unique_keys(conn, None, "t") == {"PRIMARY": ["id"]}
            conn.close()
            del conn
            gc.collect()

    def test_cache_entry_dropped_with_connection(self):
        """Test the cache does not keep a collected connection's keys"""
        introspector = UniqueKeyIntrospector()
        conn = Mock()

        def reader(connection, owner, table):
            return [("pk", "id")]

        with patch.dict("tablesync.unique_keys.CATALOG_READERS", {DatabaseType.POSTGRESQL: reader}):
            introspector.get_unique_keys(conn, None, "t", engine="postgresql")
            del conn
            gc.collect()

        assert len(introspector._cache) == 0

    def test_handle_without_weakref_support_is_cached(self):
        """Test handles that cannot be weakly referenced are still cached"""

        class Handle:
            __slots__ = ()

        introspector = UniqueKeyIntrospector()
        conn = Handle()
        reader = Mock(return_value=[("pk", "id")])

        with patch.dict("tablesync.unique_keys.CATALOG_READERS", {DatabaseType.POSTGRESQL: reader}):
            introspector.get_unique_keys(conn, None, "t", engine="postgresql")
            keys = introspector.get_unique_keys(conn, None, "t", engine="postgresql")

        assert reader.call_count == 1
        assert keys == {"pk": ["id"]}
