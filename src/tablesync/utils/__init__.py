"""
Shared utilities for table synchronization

Provides:
- database_types: engine detection, placeholders and identifier quoting
- sql_safety: validation of caller-supplied identifiers
- retry: backoff for transient catalog failures
- logging, tracing, metrics: observability stack
"""
