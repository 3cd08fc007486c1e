"""
Prometheus metrics for table synchronization

Usage:
    from prometheus_client import start_http_server
    from tablesync.utils.metrics import SyncMetrics

    metrics = SyncMetrics()
    start_http_server(9091)
    TableSync(metrics=metrics).sync_tables(...)
"""

import logging
from typing import Callable, TypeVar

from prometheus_client import REGISTRY, CollectorRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")


def get_or_create_metric(
    metric_factory: Callable[[], T],
    metric_name: str,
    registry: CollectorRegistry = REGISTRY,
) -> T:
    """
    Create a metric, or return the one already registered under that name.

    Lets several SyncMetrics instances share one registry.

    Args:
        metric_factory: Callable that creates the metric (e.g., lambda: Counter(...))
        metric_name: Name of the metric for lookup if already registered
        registry: Prometheus registry the factory registers into

    Returns:
        The metric instance (either newly created or existing)
    """
    try:
        return metric_factory()
    except ValueError:
        existing = registry._names_to_collectors.get(metric_name)
        if existing is not None:
            return existing
        raise


from .sync import SyncMetrics  # noqa: E402

__all__ = [
    "SyncMetrics",
    "get_or_create_metric",
]
