"""
Metrics for table synchronization runs.

Tracks runs, applied mutations and merge throughput per destination table.
"""

import logging
import time

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram

from . import get_or_create_metric

logger = logging.getLogger(__name__)


class SyncMetrics:
    """
    Metrics for table synchronization runs

    Every series is labelled with the destination table name.
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize sync metrics

        Args:
            registry: Custom Prometheus registry (default: global REGISTRY)
        """
        self.registry = registry or REGISTRY
        registry = self.registry

        self.runs_total = get_or_create_metric(
            lambda: Counter(
                "tablesync_runs_total",
                "Total number of sync runs",
                ["table_name", "status"],
                registry=registry,
            ),
            "tablesync_runs_total",
            registry,
        )
        self.duration_seconds = get_or_create_metric(
            lambda: Histogram(
                "tablesync_duration_seconds",
                "Duration of sync runs in seconds",
                ["table_name"],
                buckets=(0.5, 1, 5, 10, 30, 60, 300, 900, 1800, 3600, 7200),
                registry=registry,
            ),
            "tablesync_duration_seconds",
            registry,
        )
        self.last_run_timestamp = get_or_create_metric(
            lambda: Gauge(
                "tablesync_last_run_timestamp",
                "Timestamp of the last sync run",
                ["table_name"],
                registry=registry,
            ),
            "tablesync_last_run_timestamp",
            registry,
        )
        self.rows_inserted_total = get_or_create_metric(
            lambda: Counter(
                "tablesync_rows_inserted_total",
                "Rows inserted into destination tables",
                ["table_name"],
                registry=registry,
            ),
            "tablesync_rows_inserted_total",
            registry,
        )
        self.rows_deleted_total = get_or_create_metric(
            lambda: Counter(
                "tablesync_rows_deleted_total",
                "Rows deleted from destination tables",
                ["table_name"],
                registry=registry,
            ),
            "tablesync_rows_deleted_total",
            registry,
        )
        self.rows_matched_total = get_or_create_metric(
            lambda: Counter(
                "tablesync_rows_matched_total",
                "Rows found identical on both sides",
                ["table_name"],
                registry=registry,
            ),
            "tablesync_rows_matched_total",
            registry,
        )
        self.cap_hits_total = get_or_create_metric(
            lambda: Counter(
                "tablesync_cap_hits_total",
                "Runs stopped early by max_inserts or max_deletes",
                ["table_name", "cap"],
                registry=registry,
            ),
            "tablesync_cap_hits_total",
            registry,
        )

    def record_run(
        self,
        table_name: str,
        success: bool,
        duration: float,
        inserts: int = 0,
        deletes: int = 0,
        matching_rows: int = 0,
    ) -> None:
        """
        Record a finished sync run

        Args:
            table_name: Destination table of the run
            success: Whether the run finished with status "ok"
            duration: Wall time in seconds
            inserts: Rows inserted (or that would have been, in dry-run)
            deletes: Rows deleted (or that would have been, in dry-run)
            matching_rows: Rows found identical on both sides
        """
        status = "ok" if success else "failed"

        self.runs_total.labels(table_name=table_name, status=status).inc()
        self.duration_seconds.labels(table_name=table_name).observe(duration)
        self.last_run_timestamp.labels(table_name=table_name).set(time.time())

        if inserts:
            self.rows_inserted_total.labels(table_name=table_name).inc(inserts)
        if deletes:
            self.rows_deleted_total.labels(table_name=table_name).inc(deletes)
        if matching_rows:
            self.rows_matched_total.labels(table_name=table_name).inc(matching_rows)

        logger.debug(
            f"Recorded sync run: table={table_name}, status={status}, "
            f"duration={duration:.2f}s, inserts={inserts}, deletes={deletes}"
        )

    def record_cap_hit(self, table_name: str, cap: str) -> None:
        """
        Record a run halted by a mutation cap

        Args:
            table_name: Destination table of the run
            cap: "max_inserts" or "max_deletes"
        """
        self.cap_hits_total.labels(table_name=table_name, cap=cap).inc()
