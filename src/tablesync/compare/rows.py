"""
Three-way row ordering used by the merge.

The ordering here has to agree with the ORDER BY each client generates:
numeric columns sort NULL last, string columns sort NULL and '' last and
otherwise compare code point by code point. Dates, times and intervals
returned as Python temporal objects compare by value, as the engine sorts them.
"""

from collections.abc import Sequence
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any

from tablesync.model import ColumnClass

Row = Sequence[Any]

TEMPORAL_TYPES = (datetime, date, time, timedelta)


class MergeStep(str, Enum):
    """
    What the merge does with the current pair of rows.

    SOURCE_ONLY and SOURCE_FIRST insert the source row; DEST_ONLY and
    DEST_FIRST delete the destination row; MATCH consumes both.
    """

    SOURCE_ONLY = "source_only"
    DEST_ONLY = "dest_only"
    MATCH = "match"
    SOURCE_FIRST = "source_first"
    DEST_FIRST = "dest_first"


def _as_number(value: Any) -> Any:
    if isinstance(value, (int, float, Decimal)):
        return value
    return Decimal(str(value).strip())


def _native_temporal(left: Any, right: Any) -> bool:
    """Whether two values can be ordered as temporal objects"""
    if type(left) is not type(right) or not isinstance(left, TEMPORAL_TYPES):
        return False
    if isinstance(left, (datetime, time)):
        # aware and naive values do not compare
        return (left.tzinfo is None) == (right.tzinfo is None)
    return True


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)


def compare_values(left: Any, right: Any, col_class: ColumnClass) -> int:
    """
    Compare two column values.

    Args:
        left: Value from the first row
        right: Value from the second row
        col_class: Comparison class of the column

    Returns:
        -1, 0 or 1
    """
    if col_class == ColumnClass.NUMERIC:
        if left is None or right is None:
            # NULLs last
            return (left is None) - (right is None)
        a, b = _as_number(left), _as_number(right)
        return (a > b) - (a < b)

    if _native_temporal(left, right):
        return (left > right) - (left < right)

    a, b = _as_text(left), _as_text(right)
    if not a or not b:
        # '' and NULL are the same and sort last
        return (not a) - (not b)
    return (a > b) - (a < b)


def compare_rows(
    left: Row,
    right: Row,
    classes: Sequence[ColumnClass],
    width: int | None = None,
) -> int:
    """
    Compare two rows column by column, left to right.

    Args:
        left: First row
        right: Second row
        classes: Comparison class of each column
        width: Compare only the first ``width`` columns

    Returns:
        -1 if ``left`` sorts first, 1 if ``right`` sorts first, 0 if equal
    """
    count = len(classes) if width is None else width
    for index in range(count):
        result = compare_values(left[index], right[index], classes[index])
        if result:
            return result
    return 0


def classify_rows(
    source_row: Row | None,
    dest_row: Row | None,
    classes: Sequence[ColumnClass],
) -> MergeStep | None:
    """
    Decide the merge step for the current source and destination rows.

    Args:
        source_row: Current source row, None once the source is exhausted
        dest_row: Current destination row, None once the destination is exhausted
        classes: Comparison class of each column

    Returns:
        The merge step, or None when both streams are exhausted
    """
    if source_row is None and dest_row is None:
        return None
    if dest_row is None:
        return MergeStep.SOURCE_ONLY
    if source_row is None:
        return MergeStep.DEST_ONLY

    result = compare_rows(source_row, dest_row, classes)
    if result < 0:
        return MergeStep.SOURCE_FIRST
    if result > 0:
        return MergeStep.DEST_FIRST
    return MergeStep.MATCH
