"""
Core data types shared by clients, comparators and the driver.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any


class ColumnClass(str, Enum):
    """
    Comparison class of a column.

    Governs both the ORDER BY a client generates and how the row
    comparator orders and equates values.
    """

    NUMERIC = "numeric"
    STRING = "string"


@dataclass(frozen=True)
class ColumnDescriptor:
    """
    Metadata for one table column.

    ``name`` keeps the catalog spelling used in SQL; ``key`` is the
    lower-cased name used for matching columns across engines.
    ``col_class`` is None for skipped columns (LOBs, binary and
    engine-managed types), which are neither compared nor copied.
    ``character`` marks text types, whose ordering treats '' like NULL.
    """

    name: str
    type_name: str
    col_class: ColumnClass | None
    precision: int | None = None
    scale: int | None = None
    character: bool = False
    masked: bool = False

    @property
    def key(self) -> str:
        return self.name.lower()

    @property
    def skipped(self) -> bool:
        return self.col_class is None


@dataclass(frozen=True)
class ConnectionPair:
    """
    Read and write connections for one side of a sync.

    The ordered select runs on ``read``; mutations, commits and the final
    row count run on ``write``. Both are usually the same connection.
    """

    read: Any
    write: Any

    @classmethod
    def from_handle(cls, handle: Any) -> "ConnectionPair":
        """
        Normalize a connection handle.

        Args:
            handle: A DB-API connection, a ConnectionPair, or a mapping
                with "read" and "write" connections

        Returns:
            ConnectionPair
        """
        if isinstance(handle, ConnectionPair):
            return handle
        if isinstance(handle, Mapping):
            read = handle.get("read")
            write = handle.get("write", read)
            if read is None:
                raise ValueError("connection mapping requires a 'read' connection")
            return cls(read=read, write=write)
        return cls(read=handle, write=handle)

    @property
    def split(self) -> bool:
        return self.read is not self.write
