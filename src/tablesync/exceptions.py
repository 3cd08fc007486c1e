"""
Exception hierarchy for table synchronization.

Setup, schema, I/O and post-run failures end up as a failed SyncResult;
OrderingError is the one condition that is always raised to the caller.
"""


class TableSyncError(Exception):
    """Base exception for synchronization errors."""

    pass


class ClientError(TableSyncError):
    """A row source client operation failed."""

    pass


class UnsupportedDatabaseError(TableSyncError):
    """No client or catalog support for the connection's engine."""

    pass


class SchemaMismatchError(TableSyncError):
    """Source and destination column layouts disagree."""

    def __init__(self, message: str, mismatches: list[str] | None = None):
        super().__init__(message)
        self.mismatches = mismatches or []


class SyncFailedError(TableSyncError):
    """A sync run failed; the message becomes the result's error string."""

    pass


class OrderingError(TableSyncError):
    """
    A row stream is not in the order the merge requires.

    Means the ORDER BY of a side disagrees with the row comparator, so
    continuing would delete or duplicate rows.
    """

    pass
