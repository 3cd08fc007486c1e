"""
Schema comparison between source and destination clients.

Runs after both clients are initialized and before any row is read, so a
layout mismatch fails the sync without touching the destination.
"""

import logging
from collections.abc import Iterable, Sequence
from itertools import zip_longest

from tablesync.exceptions import SchemaMismatchError
from tablesync.model import ColumnDescriptor

logger = logging.getLogger(__name__)


def _fmt(value) -> str:
    return "" if value is None else str(value)


def dump_colinfo(columns: Sequence[ColumnDescriptor]) -> str:
    """
    Render column metadata as a canonical string.

    Two tables with equal dumps have identical layouts, which lets the
    schema check skip the column walk.

    Args:
        columns: Column descriptors in table order

    Returns:
        Multi-line description, one line per column
    """
    lines = [f"Column Count({len(columns)})"]
    for column in columns:
        col_type = column.col_class.value if column.col_class else "skip"
        line = f"  {column.key.upper()}: Type({col_type})"
        if column.precision is not None:
            line += f"  Prec({column.precision})"
        if column.scale is not None:
            line += f"  Scale({column.scale})"
        lines.append(line)
    return "\n".join(lines) + "\n"


def describe_name_differences(source_names: Sequence[str], dest_names: Sequence[str]) -> str:
    """
    List columns present on only one side.

    Args:
        source_names: Source column names
        dest_names: Destination column names

    Returns:
        One line per column missing from the other side, or ""
    """
    source_set = set(source_names)
    dest_set = set(dest_names)

    lines = [
        f"Column {name} in source but not in destination."
        for name in source_names
        if name not in dest_set
    ]
    lines.extend(
        f"Column {name} in destination but not in source."
        for name in dest_names
        if name not in source_set
    )
    return "\n".join(lines)


def check_column_names(source_names: Sequence[str], dest_names: Sequence[str]) -> None:
    """
    Verify that both sides select the same columns in the same order.

    Args:
        source_names: Source column names (lower-cased)
        dest_names: Destination column names (lower-cased)

    Raises:
        SchemaMismatchError: On a count, name or order difference
    """
    differences = describe_name_differences(source_names, dest_names)

    if len(source_names) != len(dest_names):
        msg = "Sync-Failure: mismatched column counts\n"
        msg += (
            f"Source has {len(source_names)} columns, "
            f"destination has {len(dest_names)} columns.\n\n"
        )
        if differences:
            msg += differences + "\n\n"
        msg += f"  Source Cols: {','.join(source_names)}\n"
        msg += f"  Dest Cols: {','.join(dest_names)}\n"
        raise SchemaMismatchError(msg, differences.splitlines())

    if differences:
        raise SchemaMismatchError(
            "Sync-Failure: mismatched column names\n" + differences + "\n",
            differences.splitlines(),
        )

    misplaced = [
        f"Col[{index}]: {source} / {dest}"
        for index, (source, dest) in enumerate(zip(source_names, dest_names))
        if source != dest
    ]
    if misplaced:
        raise SchemaMismatchError(
            "Sync-Failure: mismatched column order\n" + "\n".join(misplaced) + "\n",
            misplaced,
        )


def compare_schemas(
    source_columns: Sequence[ColumnDescriptor],
    dest_columns: Sequence[ColumnDescriptor],
    skipcols: Iterable[str] = (),
) -> None:
    """
    Compare column layouts positionally.

    Name, comparison class, precision and scale are each reported
    independently. Columns skipped on either side are left out.

    Args:
        source_columns: Source column descriptors in table order
        dest_columns: Destination column descriptors in table order
        skipcols: Additional lower-cased column names to ignore

    Raises:
        SchemaMismatchError: With a per-column report when layouts differ
    """
    if dump_colinfo(source_columns) == dump_colinfo(dest_columns):
        return

    skipped = set(skipcols)
    skipped.update(c.key for c in source_columns if c.skipped)
    skipped.update(c.key for c in dest_columns if c.skipped)

    source = [c for c in source_columns if c.key not in skipped]
    dest = [c for c in dest_columns if c.key not in skipped]

    mismatches: list[str] = []
    for index, (scol, dcol) in enumerate(zip_longest(source, dest)):
        sname = scol.key if scol else "-"
        dname = dcol.key if dcol else "-"
        label = f"Col[{index}] ({sname})"

        if scol is None or dcol is None:
            mismatches.append(f"{label}: Name mismatch ({sname} / {dname})")
            continue

        if sname != dname:
            mismatches.append(f"{label}: Name mismatch ({sname} / {dname})")
        if scol.col_class != dcol.col_class:
            mismatches.append(
                f"{label}: Type mismatch ({scol.col_class.value} / {dcol.col_class.value})"
            )
        if scol.precision != dcol.precision:
            mismatches.append(
                f"{label}: Precision mismatch ({_fmt(scol.precision)} / {_fmt(dcol.precision)})"
            )
        if scol.scale != dcol.scale:
            mismatches.append(
                f"{label}: Scale mismatch ({_fmt(scol.scale)} / {_fmt(dcol.scale)})"
            )

    if mismatches:
        logger.debug(
            f"Schema dumps differ\nSource(\n{dump_colinfo(source_columns)})\n"
            f"Dest(\n{dump_colinfo(dest_columns)})"
        )
        raise SchemaMismatchError(
            "Sync-Failure: mismatched schemas\n" + "\n".join(mismatches) + "\n",
            mismatches,
        )
