"""
Unit tests for tablesync.utils.metrics

Each test uses its own CollectorRegistry so series do not leak between tests.
"""

import pytest
from prometheus_client import CollectorRegistry, Counter

from tablesync.utils.metrics import SyncMetrics, get_or_create_metric


class TestGetOrCreateMetric:
    """Test metric registration helper"""

    def test_creates_new_metric(self, registry):
        """Test the factory result is returned on first use"""
        counter = get_or_create_metric(
            lambda: Counter("jobs_total", "Jobs", registry=registry),
            "jobs_total",
            registry,
        )

        counter.inc()
        assert registry.get_sample_value("jobs_total") == 1.0

    def test_returns_existing_metric(self, registry):
        """Test a duplicate registration returns the registered collector"""
        def factory():
            return Counter("jobs_total", "Jobs", registry=registry)

        first = get_or_create_metric(factory, "jobs_total", registry)
        second = get_or_create_metric(factory, "jobs_total", registry)

        assert first is second

    def test_unknown_conflict_is_raised(self, registry):
        """Test a ValueError not caused by a known name propagates"""
        def factory():
            raise ValueError("bad metric")

        with pytest.raises(ValueError, match="bad metric"):
            get_or_create_metric(factory, "missing_total", registry)


class TestSyncMetrics:
    """Test SyncMetrics recording"""

    def test_record_successful_run(self, sync_metrics, registry):
        """Test counters and gauges for a successful run"""
        sync_metrics.record_run("customers", success=True, duration=2.5, inserts=4, deletes=1, matching_rows=10)

        labels = {"table_name": "customers"}
        assert registry.get_sample_value("tablesync_runs_total", {**labels, "status": "ok"}) == 1.0
        assert registry.get_sample_value("tablesync_rows_inserted_total", labels) == 4.0
        assert registry.get_sample_value("tablesync_rows_deleted_total", labels) == 1.0
        assert registry.get_sample_value("tablesync_rows_matched_total", labels) == 10.0
        assert registry.get_sample_value("tablesync_duration_seconds_count", labels) == 1.0
        assert registry.get_sample_value("tablesync_duration_seconds_sum", labels) == 2.5
        assert registry.get_sample_value("tablesync_last_run_timestamp", labels) > 0

    def test_record_failed_run(self, sync_metrics, registry):
        """Test a failed run is counted under status=failed"""
        sync_metrics.record_run("customers", success=False, duration=0.1)

        assert registry.get_sample_value(
            "tablesync_runs_total", {"table_name": "customers", "status": "failed"}
        ) == 1.0
        assert registry.get_sample_value(
            "tablesync_rows_inserted_total", {"table_name": "customers"}
        ) is None

    def test_record_cap_hit(self, sync_metrics, registry):
        """Test cap hits are labelled by cap"""
        sync_metrics.record_cap_hit("orders", "max_deletes")
        sync_metrics.record_cap_hit("orders", "max_deletes")

        assert registry.get_sample_value(
            "tablesync_cap_hits_total", {"table_name": "orders", "cap": "max_deletes"}
        ) == 2.0

    def test_instances_share_registry(self):
        """Test two instances on one registry reuse the same collectors"""
        registry = CollectorRegistry()
        first = SyncMetrics(registry=registry)
        second = SyncMetrics(registry=registry)

        first.record_run("t", success=True, duration=1)
        second.record_run("t", success=True, duration=1)

        assert first.runs_total is second.runs_total
        assert registry.get_sample_value("tablesync_runs_total", {"table_name": "t", "status": "ok"}) == 2.0
