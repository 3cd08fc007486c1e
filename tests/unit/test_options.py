"""
Unit tests for run options, results and shared model types
"""

import pytest

from tablesync.model import ColumnClass, ColumnDescriptor, ConnectionPair
from tablesync.options import SyncOptions, SyncResult


class TestSyncOptions:
    """Test option validation and helpers"""

    def test_defaults(self):
        """Test defaults favour safety"""
        options = SyncOptions()

        assert options.dry_run is False
        assert options.compare_schemas is True
        assert options.verify_order is True
        assert options.max_inserts is None
        assert options.row_count_interval == 1000

    @pytest.mark.parametrize(
        "overrides,message",
        [
            ({"max_inserts": -1}, "max_inserts must be a non-negative integer"),
            ({"max_deletes": "10"}, "max_deletes must be a non-negative integer"),
            ({"fetch_size": 0}, "fetch_size must be a positive integer"),
            ({"row_count_interval": 1.5}, "row_count_interval must be a positive integer"),
            ({"post_sync_check": "not callable"}, "post_sync_check must be callable"),
        ],
    )
    def test_invalid_values(self, overrides, message):
        """Test invalid values are rejected up front"""
        with pytest.raises(ValueError, match=message):
            SyncOptions(**overrides)

    def test_zero_cap_is_allowed(self):
        """Test 0 is accepted and means unlimited"""
        assert SyncOptions(max_inserts=0).max_inserts == 0

    def test_merged_overrides_defaults(self):
        """Test per-call values win over instance defaults"""
        options = SyncOptions.merged({"dry_run": True, "fetch_size": 50}, {"fetch_size": 10})

        assert options.dry_run is True
        assert options.fetch_size == 10

    def test_merged_unknown_option(self):
        """Test an unknown name is a TypeError"""
        with pytest.raises(TypeError):
            SyncOptions.merged({}, {"batch_size": 10})

    def test_missing_required(self):
        """Test required options are reported in a fixed order"""
        options = SyncOptions(source_db=object(), dest_table="t")

        assert options.missing_required() == ["source_table", "dest_db"]

    def test_client_options_per_side(self):
        """Test side-specific options are routed to the right client"""
        options = SyncOptions(
            source_where="id > %s",
            source_args=[10],
            dest_alias="d",
            excl_cols="notes",
            dry_run=True,
        )

        source = options.client_options("source")
        dest = options.client_options("dest")

        assert source["where"] == "id > %s"
        assert source["args"] == [10]
        assert source["alias"] is None
        assert dest["where"] is None
        assert dest["alias"] == "d"
        assert source["excl_cols"] == dest["excl_cols"] == "notes"
        assert dest["dry_run"] is True

    def test_names(self):
        assert {"source_db", "dumpfile", "post_commit_check"} <= SyncOptions.names()


class TestSyncResult:
    """Test result helpers"""

    def test_ok(self):
        assert SyncResult().ok is True
        assert SyncResult(status="failed", error="x").ok is False

    def test_to_dict(self):
        """Test the dictionary carries every reported field"""
        data = SyncResult(inserts=2, hit_max_deletes=True).to_dict()

        assert data["inserts"] == 2
        assert data["hit_max_deletes"] is True
        assert data["final_dest_rows"] is None


class TestConnectionPair:
    """Test connection handle normalization"""

    def test_single_connection(self):
        """Test one connection serves both roles"""
        conn = object()
        pair = ConnectionPair.from_handle(conn)

        assert pair.read is conn
        assert pair.write is conn
        assert pair.split is False

    def test_mapping(self):
        """Test a read/write mapping is split"""
        read, write = object(), object()
        pair = ConnectionPair.from_handle({"read": read, "write": write})

        assert pair == ConnectionPair(read=read, write=write)
        assert pair.split is True

    def test_mapping_without_write(self):
        """Test a missing write connection falls back to read"""
        read = object()
        assert ConnectionPair.from_handle({"read": read}).write is read

    def test_mapping_without_read(self):
        with pytest.raises(ValueError, match="requires a 'read' connection"):
            ConnectionPair.from_handle({"write": object()})

    def test_pair_passthrough(self):
        pair = ConnectionPair(read=1, write=2)
        assert ConnectionPair.from_handle(pair) is pair


class TestColumnDescriptor:
    """Test descriptor properties"""

    def test_key_is_lower_case(self):
        assert ColumnDescriptor("CustomerID", "INT", ColumnClass.NUMERIC).key == "customerid"

    def test_skipped(self):
        """Test columns without a class are skipped"""
        assert ColumnDescriptor("photo", "BLOB", None).skipped is True
        assert ColumnDescriptor("id", "INT", ColumnClass.NUMERIC).skipped is False
