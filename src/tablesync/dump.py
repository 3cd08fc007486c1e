"""
CSV snapshots of synchronized tables for manual auditing.

A run with ``dumpfile="/tmp/customers"`` writes:
    /tmp/customers.dest-pre.csv   destination before the merge
    /tmp/customers.src.csv        source after the run
    /tmp/customers.dest.csv       destination after the run
Rows are written in merge order, so the post-run source and destination
files of a successful sync are identical.
"""

import csv
import logging
from typing import Any

from tablesync.clients.base import RowSourceClient
from tablesync.utils.tracing import trace_function

logger = logging.getLogger(__name__)


def dump_path(prefix: str, stage: str) -> str:
    """
    File name of one snapshot.

    Args:
        prefix: The run's dumpfile option
        stage: "dest-pre", "src" or "dest"
    """
    return f"{prefix}.{stage}.csv"


@trace_function("tablesync.dump_table", component="dump")
def dump_table(client: RowSourceClient, path: str, connection: Any | None = None) -> int:
    """
    Write the client's selected columns to a CSV file.

    NULL is written as an empty field.

    Args:
        client: Initialized client
        path: Output file
        connection: Connection to read through (default: the client's read connection)

    Returns:
        Number of rows written
    """
    count = 0
    with open(path, "w", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle)
        writer.writerow(client.colnames())
        for row in client.iter_rows(connection):
            writer.writerow(["" if value is None else value for value in row])
            count += 1

    logger.info(f"Dumped {count} rows of {client.table} to {path}")
    return count
