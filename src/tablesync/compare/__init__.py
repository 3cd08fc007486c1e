"""
Row and schema comparison.
"""

from .rows import MergeStep, classify_rows, compare_rows, compare_values
from .schema import (
    check_column_names,
    compare_schemas,
    dump_colinfo,
)

__all__ = [
    "MergeStep",
    "classify_rows",
    "compare_rows",
    "compare_values",
    "check_column_names",
    "compare_schemas",
    "dump_colinfo",
]
