"""
Base row source client.

A client wraps one table on one engine: it reads column metadata from the
catalog, streams the table in an order that agrees with the row comparator,
and applies inserts and deletes on the destination side. Engine subclasses
supply the catalog query, the type classification and the ORDER BY
dialect; everything else lives here.
"""

import logging
import re
from collections import deque
from collections.abc import Iterator, Mapping, Sequence
from typing import Any

from tablesync.compare.schema import dump_colinfo
from tablesync.exceptions import ClientError
from tablesync.model import ColumnClass, ColumnDescriptor, ConnectionPair
from tablesync.utils.database_types import DatabaseType
from tablesync.utils.retry import retry_database_operation
from tablesync.utils.sql_safety import (
    quote_literal,
    split_name_list,
    split_schema_table,
    validate_identifier,
)
from tablesync.utils.tracing import trace_database_query, trace_operation

logger = logging.getLogger(__name__)

SOURCE = "source"
DEST = "dest"

_PARENTHESIZED = re.compile(r"\([^)]*\)")


@retry_database_operation(max_retries=2, base_delay=0.5)
def run_catalog_query(
    connection: Any, sql: str, params: Sequence[Any] | Mapping[str, Any] = ()
) -> list[tuple]:
    """
    Run a read-only catalog query and return all rows.

    Args:
        connection: DB-API connection
        sql: Query text
        params: Positional or named bind parameters

    Returns:
        List of result rows
    """
    cursor = connection.cursor()
    try:
        if params:
            cursor.execute(sql, params if isinstance(params, Mapping) else tuple(params))
        else:
            cursor.execute(sql)
        return [tuple(row) for row in cursor.fetchall()]
    finally:
        cursor.close()


def normalize_unique_keys(
    unique_keys: Mapping[str, Sequence[str] | str] | Sequence[Sequence[str] | str] | None,
) -> dict[str, list[str]]:
    """
    Normalize the unique_keys option into {key name: [lower-cased columns]}.

    Args:
        unique_keys: Mapping of key name to columns, or a list of column
            lists; each column list may also be a comma separated string

    Returns:
        Ordered mapping of key name to column names
    """
    if not unique_keys:
        return {}

    if isinstance(unique_keys, Mapping):
        items = list(unique_keys.items())
    else:
        items = [(f"key{index + 1}", cols) for index, cols in enumerate(unique_keys)]

    keys: dict[str, list[str]] = {}
    for name, cols in items:
        columns = [col.lower() for col in split_name_list(cols)]
        if columns:
            keys[str(name)] = columns
    return keys


class RowSourceClient:
    """
    One side of a sync: an ordered row stream plus mutation primitives.

    Failures raise ClientError and leave the message on ``error``.
    Counters ``inserts``, ``deletes`` and ``commits`` track what this
    client applied; ``pending`` counts uncommitted changes.
    """

    engine: DatabaseType = DatabaseType.UNKNOWN

    # Uncommitted changes tolerated before check_pending() commits (force only)
    MAX_PENDING = 500

    NUMERIC_TYPES: frozenset[str] = frozenset()
    CHARACTER_TYPES: frozenset[str] = frozenset()
    TEMPORAL_TYPES: frozenset[str] = frozenset()
    SKIP_TYPES: frozenset[str] = frozenset()
    # Character types whose native ORDER BY is not textual
    TEXT_CAST_TYPES: frozenset[str] = frozenset()

    def __init__(
        self,
        db: Any,
        table: str,
        role: str = SOURCE,
        where: str | None = None,
        args: Sequence[Any] | None = None,
        alias: str | None = None,
        excl_cols: str | Sequence[str] | None = None,
        mask_cols: str | Sequence[str] | None = None,
        unique_keys: Any = None,
        ukey_sort: bool | Sequence[str] = False,
        no_dups: bool = False,
        dry_run: bool = False,
        force: bool = False,
        fetch_size: int = 1000,
    ):
        """
        Initialize client

        Args:
            db: DB-API connection, or {"read": conn, "write": conn}
            table: Table name, optionally schema qualified
            role: "source" or "dest"
            where: Predicate appended to the select and row count
            args: Bind parameters for ``where``
            alias: Table alias usable inside ``where``
            excl_cols: Columns to leave out of the sync
            mask_cols: "name" or "name:value" entries; the source selects the
                value instead of the column
            unique_keys: Unique key sets used for delete-by-key and ukey_sort
            ukey_sort: True to order by the first unique key, or a column list
            no_dups: Select DISTINCT rows and delete one row at a time
            dry_run: Never mutate or commit
            force: Commit every MAX_PENDING changes, ignore caps
            fetch_size: Rows fetched per round trip
        """
        if role not in (SOURCE, DEST):
            raise ValueError(f"role must be '{SOURCE}' or '{DEST}', got {role!r}")
        if fetch_size < 1:
            raise ValueError(f"fetch_size must be positive, got {fetch_size}")

        self.connections = ConnectionPair.from_handle(db)
        self.role = role
        self.table = table
        self.owner, self.bare_table = split_schema_table(table)
        if alias:
            validate_identifier(alias)
        self.alias = alias
        self.where = where
        self.args = tuple(args or ())

        self.excl_cols = {name.lower() for name in split_name_list(excl_cols)}
        self.mask_cols = self._parse_masks(mask_cols)
        self.set_unique_keys(unique_keys)

        if isinstance(ukey_sort, str):
            ukey_sort = split_name_list(ukey_sort)
        self.ukey_sort = ukey_sort
        self.no_dups = bool(no_dups)
        self.dry_run = bool(dry_run)
        self.force = bool(force)
        self.fetch_size = fetch_size

        self.error: str | None = None
        self.pending = 0
        self.inserts = 0
        self.deletes = 0
        self.commits = 0
        self.sort_width = 0

        self._columns: list[ColumnDescriptor] = []
        self._selected: list[ColumnDescriptor] = []
        self._sorted: list[ColumnDescriptor] = []
        self._select_sql = ""
        self._insert_sql = ""
        self._delete_sql = ""
        self._uniq_deletes: list[tuple[str, list[int]]] = []

        self._cursor = None
        self._write_cursor = None
        self._buffer: deque = deque()
        self._exhausted = False
        self._saved_autocommit: Any = None
        self._initialized = False

    def __repr__(self) -> str:
        return f"{type(self).__name__}(role={self.role!r}, table={self.table!r})"

    @staticmethod
    def _parse_masks(mask_cols: str | Sequence[str] | None) -> dict[str, str]:
        masks = {}
        for entry in split_name_list(mask_cols):
            name, _, value = entry.partition(":")
            validate_identifier(name)
            masks[name.lower()] = value
        return masks

    def set_unique_keys(self, unique_keys: Any) -> None:
        """Replace the unique key sets; takes effect at init()."""
        self.unique_keys = normalize_unique_keys(unique_keys)
        for columns in self.unique_keys.values():
            for column in columns:
                validate_identifier(column)

    @property
    def is_dest(self) -> bool:
        return self.role == DEST

    def _fail(self, message: str, cause: Exception | None = None):
        self.error = message
        logger.debug(f"{self!r}: {message}")
        raise ClientError(message) from cause

    # ------------------------------------------------------------------
    # Dialect hooks
    # ------------------------------------------------------------------

    def quote(self, identifier: str) -> str:
        return self.engine.quote_identifier(identifier)

    def placeholders(self, count: int, start: int = 0) -> list[str]:
        return [self.engine.get_placeholder(start + i) for i in range(count)]

    def _describe_columns(self) -> list[tuple[str, str, int | None, int | None]]:
        """
        Read (name, type, precision, scale) for every column in table order.
        """
        raise NotImplementedError

    def _prepare_session(self, connection: Any) -> None:
        """Engine session setup run on every connection the client uses."""

    def _open_select_cursor(self, connection: Any, purpose: str = "select") -> Any:
        return connection.cursor()

    def _nulls_last(self, expr: str) -> list[str]:
        return [f"{expr} IS NULL", expr]

    def _empty_last(self, expr: str) -> str:
        return f"({expr} IS NULL OR {expr} = '')"

    def _binary_order(self, expr: str) -> str:
        return expr

    def _text_expr(self, expr: str) -> str:
        return f"CAST({expr} AS VARCHAR(4000))"

    def _limit_one_delete(self, table: str, condition: str) -> str:
        return f"DELETE FROM {table} WHERE {condition}"

    def _adapt_value(self, value: Any) -> Any:
        return value

    def _get_autocommit(self, connection: Any) -> Any:
        return getattr(connection, "autocommit", None)

    def _set_autocommit(self, connection: Any, value: Any) -> None:
        connection.autocommit = value

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    @staticmethod
    def base_type(type_name: str) -> str:
        return _PARENTHESIZED.sub("", type_name or "").strip().upper()

    def classify_type(
        self, type_name: str, precision: int | None = None
    ) -> tuple[ColumnClass | None, bool]:
        """
        Map a native type to a comparison class.

        Args:
            type_name: Native type as reported by the catalog
            precision: Declared length or precision

        Returns:
            Tuple of (class, is_character); class is None for skipped types

        Raises:
            ClientError: For types the client does not know how to compare
        """
        base = self.base_type(type_name)
        for candidate in (base, base.split(" ")[0]):
            if candidate in self.SKIP_TYPES:
                return None, False
            if candidate in self.CHARACTER_TYPES:
                return ColumnClass.STRING, True
            if candidate in self.TEMPORAL_TYPES:
                return ColumnClass.STRING, False
            if candidate in self.NUMERIC_TYPES:
                return ColumnClass.NUMERIC, False

        self._fail(f"don't know how to compare type {type_name!r} in {self.table}")

    def _describe(
        self, name: str, type_name: str, precision: int | None, scale: int | None
    ) -> ColumnDescriptor:
        key = name.lower()

        if key in self.excl_cols:
            col_class, character = None, False
        elif key in self.mask_cols:
            col_class, character = ColumnClass.STRING, True
        else:
            col_class, character = self.classify_type(type_name, precision)

        return ColumnDescriptor(
            name=name,
            type_name=type_name,
            col_class=col_class,
            precision=precision,
            scale=scale,
            character=character,
            masked=key in self.mask_cols,
        )

    def colnames(self) -> list[str]:
        return [column.key for column in self._selected]

    def coltypes(self) -> list[ColumnClass]:
        return [column.col_class for column in self._selected]

    def colinfo(self) -> list[ColumnDescriptor]:
        """Descriptors of every table column, skipped ones included, in table order."""
        return list(self._columns)

    def skipcols(self) -> set[str]:
        return {column.key for column in self._columns if column.skipped}

    def dump_colinfo(self) -> str:
        return dump_colinfo(self._columns)

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def init(self) -> bool:
        """
        Read column metadata and build the client's statements.

        Turns autocommit off on the write connection of a non-dry-run
        destination; close_queries() restores it.

        Returns:
            True on success

        Raises:
            ClientError: If the table cannot be described or a column
                cannot be compared
        """
        with trace_operation(
            "tablesync.client.init",
            role=self.role,
            table=self.table,
            **{"db.system": self.engine.value},
        ):
            try:
                self._prepare_session(self.connections.read)
                if self.connections.split and self.is_dest:
                    self._prepare_session(self.connections.write)
                with trace_database_query("CATALOG", self.table, self.engine.value):
                    described = self._describe_columns()
            except ClientError:
                raise
            except Exception as e:
                self._fail(f"unable to describe {self.table}: {e}", e)

            if not described:
                self._fail(f"table {self.table} not found or has no columns")

            self._columns = [self._describe(*column) for column in described]
            self._build_column_lists()
            self._build_queries()

            if self.is_dest and not self.dry_run:
                try:
                    self._begin()
                except Exception as e:
                    self._fail(f"unable to prepare {self.table} for writing: {e}", e)

            self._initialized = True
            logger.debug(f"{self!r} initialized, select: {self._select_sql}")
            return True

    def _sort_key_columns(self) -> list[str] | None:
        if not self.ukey_sort:
            return None
        if isinstance(self.ukey_sort, Sequence) and self.ukey_sort:
            return [col.lower() for col in self.ukey_sort]
        for columns in self.unique_keys.values():
            if columns:
                return list(columns)
        return None

    def _build_column_lists(self) -> None:
        selectable = [column for column in self._columns if not column.skipped]
        by_key = {column.key: column for column in selectable}

        key_columns = self._sort_key_columns()
        if key_columns:
            for col in key_columns:
                if col not in by_key:
                    self._fail(f"invalid column name for sort key: {col}")
            rest = [column for column in selectable if column.key not in key_columns]
            self._selected = [by_key[col] for col in key_columns] + rest
            self.sort_width = len(key_columns)
            self._sorted = self._selected[: self.sort_width]
        else:
            self._selected = selectable
            self.sort_width = len(selectable)
            self._sorted = selectable

        if not self._selected:
            self._fail(f"no comparable columns in {self.table}")

        for name, columns in self.unique_keys.items():
            for col in columns:
                if col not in by_key:
                    self._fail(f"invalid column name {col} in unique key {name}")

    def _select_expr(self, column: ColumnDescriptor) -> str:
        if column.masked and not self.is_dest:
            return f"{quote_literal(self.mask_cols[column.key])} AS {self.quote(column.name)}"
        return self.quote(column.name)

    def sort_terms(self, column: ColumnDescriptor) -> list[str]:
        """
        ORDER BY terms for one column, matching the row comparator.

        Args:
            column: Selected column

        Returns:
            SQL expressions (empty for a source column replaced by a mask)
        """
        if column.masked and not self.is_dest:
            return []

        expr = self.quote(column.name)
        if column.col_class == ColumnClass.NUMERIC:
            return self._nulls_last(expr)
        if column.character:
            if column.masked or self.base_type(column.type_name) in self.TEXT_CAST_TYPES:
                expr = self._text_expr(expr)
            return [self._empty_last(expr), self._binary_order(expr)]
        return self._nulls_last(expr)

    def _from_clause(self) -> str:
        sql = f" FROM {self.table}"
        if self.alias:
            sql += f" {self.alias}"
        if self.where:
            sql += f" WHERE {self.where}"
        return sql

    def _build_queries(self) -> None:
        select_cols = ", ".join(self._select_expr(column) for column in self._selected)
        order_terms = [term for column in self._sorted for term in self.sort_terms(column)]

        if self.no_dups:
            # DISTINCT cannot be combined with ORDER BY expressions on most engines
            sql = f"SELECT * FROM (SELECT DISTINCT {select_cols}{self._from_clause()}) d"
        else:
            sql = f"SELECT {select_cols}{self._from_clause()}"
        if order_terms:
            sql += " ORDER BY " + ", ".join(order_terms)
        self._select_sql = sql

        if not self.is_dest:
            return

        quoted = [self.quote(column.name) for column in self._selected]
        values = ", ".join(self.placeholders(len(quoted)))
        self._insert_sql = (
            f"INSERT INTO {self.table} ({', '.join(quoted)}) VALUES ({values})"
        )

        conditions = []
        marks = iter(self.placeholders(2 * len(quoted)))
        for col in quoted:
            conditions.append(f"({col} = {next(marks)} OR ({next(marks)} IS NULL AND {col} IS NULL))")
        condition = " AND ".join(conditions)
        if self.no_dups:
            self._delete_sql = self._limit_one_delete(self.table, condition)
        else:
            self._delete_sql = f"DELETE FROM {self.table} WHERE {condition}"

        positions = {column.key: index for index, column in enumerate(self._selected)}
        self._uniq_deletes = []
        for columns in self.unique_keys.values():
            marks = self.placeholders(len(columns))
            where = " AND ".join(
                f"{self.quote(self._selected[positions[col]].name)} = {mark}"
                for col, mark in zip(columns, marks)
            )
            self._uniq_deletes.append(
                (f"DELETE FROM {self.table} WHERE {where}", [positions[col] for col in columns])
            )

    def _begin(self) -> None:
        connection = self.connections.write
        self._saved_autocommit = self._get_autocommit(connection)
        if self._saved_autocommit:
            self._set_autocommit(connection, False)

    def _restore_autocommit(self) -> None:
        if self._saved_autocommit:
            self._set_autocommit(self.connections.write, self._saved_autocommit)
        self._saved_autocommit = None

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    @staticmethod
    def _execute(cursor: Any, sql: str, params: Sequence[Any] = ()) -> None:
        if params:
            cursor.execute(sql, tuple(params))
        else:
            cursor.execute(sql)

    def _open_select(self) -> None:
        self._cursor = self._open_select_cursor(self.connections.read)
        self._execute(self._cursor, self._select_sql, self.args)

    def fetch_row(self) -> tuple | None:
        """
        Return the next row in sort order.

        Returns:
            Row tuple, or None at end of stream

        Raises:
            ClientError: If the select or fetch fails
        """
        if self._exhausted:
            return None

        if not self._buffer:
            try:
                if self._cursor is None:
                    self._open_select()
                batch = self._cursor.fetchmany(self.fetch_size)
            except Exception as e:
                self._fail(f"fetch from {self.table} failed: {e}", e)

            if not batch:
                self._exhausted = True
                self._close_cursor()
                return None
            self._buffer.extend(batch)

        return tuple(self._buffer.popleft())

    def iter_rows(self, connection: Any | None = None) -> Iterator[tuple]:
        """
        Stream the table in sort order through a separate cursor.

        Args:
            connection: Connection to read from (default: read connection)

        Yields:
            Row tuples
        """
        cursor = self._open_select_cursor(connection or self.connections.read, purpose="dump")
        try:
            self._execute(cursor, self._select_sql, self.args)
            while True:
                batch = cursor.fetchmany(self.fetch_size)
                if not batch:
                    break
                for row in batch:
                    yield tuple(row)
        finally:
            cursor.close()

    def row_count(self) -> int:
        """
        Count the rows the select covers, through the write connection.

        Raises:
            ClientError: If the count query fails
        """
        sql = f"SELECT COUNT(*){self._from_clause()}"
        try:
            with trace_database_query("COUNT", self.table, self.engine.value):
                cursor = self.connections.write.cursor()
                try:
                    self._execute(cursor, sql, self.args)
                    row = cursor.fetchone()
                finally:
                    cursor.close()
        except Exception as e:
            self._fail(f"row count of {self.table} failed: {e}", e)
        return int(row[0])

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def _write(self, sql: str, params: Sequence[Any], action: str) -> int:
        if not self.is_dest:
            self._fail(f"{action} is only allowed on a destination client")
        try:
            if self._write_cursor is None:
                self._write_cursor = self.connections.write.cursor()
            self._write_cursor.execute(sql, tuple(self._adapt_value(v) for v in params))
            return self._write_cursor.rowcount
        except Exception as e:
            self._fail(f"{action} on {self.table} failed: {e}", e)

    def insert_row(self, *values: Any) -> bool:
        """
        Insert one row.

        Args:
            *values: Column values in colnames() order

        Returns:
            True on success
        """
        self._write(self._insert_sql, values, "insert")
        self.inserts += 1
        self.pending += 1
        return True

    def delete_row(self, *values: Any) -> int:
        """
        Delete the row(s) equal to ``values`` in every selected column.

        NULL matches NULL. Deleting nothing is not an error.

        Args:
            *values: Column values in colnames() order

        Returns:
            Number of rows deleted
        """
        params = [value for value in values for _ in range(2)]
        count = max(self._write(self._delete_sql, params, "delete"), 0)
        self.deletes += count
        if count:
            self.pending += 1
        return count

    def delete_uniq(self, *values: Any) -> int:
        """
        Delete rows sharing any unique key with ``values``.

        Args:
            *values: Column values in colnames() order

        Returns:
            Number of rows deleted across all unique keys
        """
        total = 0
        for sql, positions in self._uniq_deletes:
            total += max(self._write(sql, [values[i] for i in positions], "delete unique"), 0)
        if total:
            self.deletes += total
            self.pending += 1
        return total

    def _commit(self) -> None:
        try:
            self.connections.write.commit()
        except Exception as e:
            self._fail(f"commit on {self.table} failed: {e}", e)
        self.commits += 1
        self.pending = 0

    def check_pending(self) -> bool:
        """
        Commit a batch of changes when ``force`` is set and enough are pending.

        Returns:
            True (failures raise)
        """
        if self.is_dest and self.force and not self.dry_run and self.pending > self.MAX_PENDING:
            logger.debug(f"{self!r}: committing {self.pending} pending changes")
            self._commit()
        return True

    def _close_cursor(self) -> None:
        if self._cursor is not None:
            cursor, self._cursor = self._cursor, None
            cursor.close()

    def close_queries(self) -> bool:
        """
        Close cursors, commit pending changes and restore autocommit.

        Returns:
            True on success
        """
        self._close_cursor()
        self._buffer.clear()

        if self.is_dest and not self.dry_run and self._initialized:
            if self.pending and not self.error:
                self._commit()
            if self._write_cursor is not None:
                cursor, self._write_cursor = self._write_cursor, None
                cursor.close()
            self._restore_autocommit()
        return True

    def roll_back(self) -> None:
        """Roll back uncommitted destination changes; no-op on a source."""
        if not self.is_dest or self.dry_run:
            return
        try:
            self.connections.write.rollback()
        except Exception as e:
            self._fail(f"rollback on {self.table} failed: {e}", e)
        self.pending = 0

    def abort(self) -> None:
        """
        Roll back and release everything after a failed run.

        Secondary errors are logged so the original failure is what surfaces.
        """
        for step in (self.roll_back, self._close_cursor):
            try:
                step()
            except Exception as e:
                logger.warning(f"{self!r}: cleanup step {step.__name__} failed: {e}")

        self._buffer.clear()
        if self._write_cursor is not None:
            cursor, self._write_cursor = self._write_cursor, None
            try:
                cursor.close()
            except Exception as e:
                logger.warning(f"{self!r}: closing write cursor failed: {e}")
        if self.is_dest and self._initialized and not self.dry_run:
            try:
                self._restore_autocommit()
            except Exception as e:
                logger.warning(f"{self!r}: restoring autocommit failed: {e}")
