"""
Sync driver.

TableSync converges a destination table to a source table with a streaming
sorted merge: both sides are read in the same total order, the row
comparator classifies each pair, and the destination client applies the
minimal deletes and inserts. Neither table is ever loaded whole.

A run moves through SETUP -> SCHEMA_CHECK -> MERGING -> FINALIZING and ends
COMMITTED or FAILED. Failures after setup roll the destination back; the
one condition raised to the caller instead of returned is OrderingError.
"""

import logging
import os
import time
from enum import Enum
from typing import Any

from tablesync.clients import create_client
from tablesync.clients.base import DEST, SOURCE, RowSourceClient
from tablesync.compare import MergeStep, check_column_names, classify_rows, compare_rows, compare_schemas
from tablesync.dump import dump_path, dump_table
from tablesync.exceptions import (
    ClientError,
    OrderingError,
    SchemaMismatchError,
    SyncFailedError,
    UnsupportedDatabaseError,
)
from tablesync.model import ColumnClass, ConnectionPair
from tablesync.options import SyncOptions, SyncResult
from tablesync.unique_keys import UniqueKeyIntrospector
from tablesync.utils.logging import ContextLogger
from tablesync.utils.metrics import SyncMetrics
from tablesync.utils.tracing import add_span_attributes, add_span_event, trace_operation

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    SETUP = "setup"
    SCHEMA_CHECK = "schema_check"
    MERGING = "merging"
    FINALIZING = "finalizing"
    COMMITTED = "committed"
    FAILED = "failed"


class SyncRun:
    """
    State of one sync_tables() call: clients, counters and timing.

    Created per call and discarded on return; nothing carries over between
    runs except the owning TableSync's unique key cache.
    """

    def __init__(
        self,
        options: SyncOptions,
        introspector: UniqueKeyIntrospector,
        metrics: SyncMetrics,
    ):
        self.options = options
        self.introspector = introspector
        self.metrics = metrics
        self.state = SyncState.SETUP
        self.log = ContextLogger(
            __name__,
            source_table=options.source_table,
            dest_table=options.dest_table,
        )

        self.source: RowSourceClient | None = None
        self.dest: RowSourceClient | None = None
        self.classes: list[ColumnClass] = []

        self.error: str | None = None
        self.inserts = 0
        self.deletes = 0
        self.seen_source_rows = 0
        self.seen_dest_rows = 0
        self.matching_rows = 0
        self.final_dest_rows: int | None = None
        self.fetch_source_time = 0.0
        self.fetch_dest_time = 0.0
        self.hit_max_inserts = False
        self.hit_max_deletes = False

        self._source_row: tuple | None = None
        self._dest_row: tuple | None = None
        self._source_done = False
        self._dest_done = False
        self._prev_source: tuple | None = None
        self._prev_dest: tuple | None = None

        self._steps = {
            MergeStep.MATCH: self._match,
            MergeStep.DEST_ONLY: self._delete,
            MergeStep.DEST_FIRST: self._delete,
            MergeStep.SOURCE_ONLY: self._insert,
            MergeStep.SOURCE_FIRST: self._insert,
        }

        self._started = time.time()
        self._cpu_started = os.times()
        self._finished: float | None = None
        self._cpu_finished: os.times_result | None = None

    @property
    def capped(self) -> bool:
        return self.hit_max_inserts or self.hit_max_deletes

    def _enter(self, state: SyncState) -> None:
        self.state = state
        add_span_event(f"tablesync.{state.value}")
        self.log.debug(f"Sync state: {state.value}")

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def execute(self) -> None:
        """
        Run every phase; expected failures raise SyncFailedError or OrderingError.
        """
        self.setup()
        self.check_schema()
        self.merge()
        self.finalize()

    def _run_hook(self, name: str) -> None:
        hook = getattr(self.options, name)
        if hook is None:
            return
        self.log.debug(f"Running {name}")
        try:
            outcome = hook(self.options)
        except Exception as e:
            raise SyncFailedError(f"{name} failed: {type(e).__name__}: {e}") from e
        if outcome:
            raise SyncFailedError(f"{name} failed: {outcome}")

    def setup(self) -> None:
        options = self.options
        missing = options.missing_required()
        if missing:
            raise SyncFailedError(f"missing {missing[0]}")

        self._run_hook("pre_setup_check")

        self.source = self._allocate(SOURCE, "source", options.source_db, options.source_table)
        self.dest = self._allocate(DEST, "destination", options.dest_db, options.dest_table)

        if options.unique_keys is None:
            unique_keys = self._introspect_unique_keys()
            try:
                self.source.set_unique_keys(unique_keys)
                self.dest.set_unique_keys(unique_keys)
            except ValueError as e:
                raise SyncFailedError(f"unusable unique key on {self.dest.table}: {e}") from e

        for client, label in ((self.source, "source"), (self.dest, "destination")):
            try:
                client.init()
            except ClientError as e:
                raise SyncFailedError(f"unable to initialize {label} client: {e}") from e

    def _allocate(self, role: str, label: str, db: Any, table: str) -> RowSourceClient:
        try:
            return create_client(
                db,
                table,
                role=role,
                unique_keys=self.options.unique_keys,
                **self.options.client_options(role),
            )
        except (UnsupportedDatabaseError, ValueError) as e:
            raise SyncFailedError(f"unable to allocate {label} client: {e}") from e

    def _introspect_unique_keys(self) -> dict[str, list[str]]:
        """
        The destination table's unique keys, without sets naming excluded
        or masked columns.
        """
        dest = self.dest
        try:
            keys = self.introspector.get_unique_keys(
                dest.connections.write, dest.owner, dest.bare_table, engine=dest.engine
            )
        except Exception as e:
            raise SyncFailedError(f"unable to read unique keys of {dest.table}: {e}") from e

        unusable = dest.excl_cols | set(dest.mask_cols)
        usable = {name: cols for name, cols in keys.items() if not unusable.intersection(cols)}
        if len(usable) != len(keys):
            self.log.debug(f"Dropped unique keys naming excluded columns: {sorted(set(keys) - set(usable))}")
        return usable

    def check_schema(self) -> None:
        self._enter(SyncState.SCHEMA_CHECK)
        source, dest = self.source, self.dest

        if self.options.debug:
            self.log.debug(f"Source columns:\n{source.dump_colinfo()}")
            self.log.debug(f"Destination columns:\n{dest.dump_colinfo()}")

        try:
            check_column_names(source.colnames(), dest.colnames())
            if self.options.compare_schemas:
                compare_schemas(source.colinfo(), dest.colinfo(), source.skipcols() | dest.skipcols())
        except SchemaMismatchError as e:
            raise SyncFailedError(str(e)) from e

        self.classes = dest.coltypes()
        if source.coltypes() != self.classes:
            self.log.warning("Source and destination comparison classes differ, using destination classes")

        self._run_hook("pre_select_check")

    # ------------------------------------------------------------------
    # Merge
    # ------------------------------------------------------------------

    def merge(self) -> None:
        self._enter(SyncState.MERGING)
        if self.options.dumpfile:
            self._dump(self.dest, "dest-pre", self.dest.connections.read)

        while True:
            try:
                self.dest.check_pending()
            except ClientError as e:
                raise SyncFailedError(str(e)) from e

            if self._source_row is None and not self._source_done:
                self._fetch_source()
            if self._dest_row is None and not self._dest_done:
                self._fetch_dest()

            step = classify_rows(self._source_row, self._dest_row, self.classes)
            if step is None:
                break
            if not self._steps[step](step):
                break

    def _fetch_source(self) -> None:
        started = time.perf_counter()
        try:
            row = self.source.fetch_row()
        except ClientError as e:
            raise SyncFailedError(f"select from source failed: {e}") from e
        finally:
            self.fetch_source_time += time.perf_counter() - started

        if row is None:
            self._source_done = True
            if self.options.check_empty_source and self.seen_source_rows == 0:
                raise SyncFailedError(self._empty_source_message())
            return

        self.seen_source_rows += 1
        self._check_order("source", self._prev_source, row, self.source.sort_width)
        self._prev_source = self._source_row = row
        if self.seen_source_rows % self.options.row_count_interval == 0:
            self.log.info(f"Read {self.seen_source_rows} rows from source")
        if self.options.debug > 1:
            self.log.debug(f"FetchSrc: {row!r}")

    def _fetch_dest(self) -> None:
        started = time.perf_counter()
        try:
            row = self.dest.fetch_row()
        except ClientError as e:
            raise SyncFailedError(f"select from dest failed: {e}") from e
        finally:
            self.fetch_dest_time += time.perf_counter() - started

        if row is None:
            self._dest_done = True
            return

        self.seen_dest_rows += 1
        self._check_order("destination", self._prev_dest, row, self.dest.sort_width)
        self._prev_dest = self._dest_row = row
        if self.seen_dest_rows % self.options.row_count_interval == 0:
            self.log.info(f"Read {self.seen_dest_rows} rows from destination")
        if self.options.debug > 1:
            self.log.debug(f"FetchDst: {row!r}")

    def _check_order(self, side: str, previous: tuple | None, row: tuple, width: int) -> None:
        if not self.options.verify_order or previous is None:
            return
        if compare_rows(previous, row, self.classes, width) > 0:
            raise OrderingError(f"{side} rows out of merge order: {previous!r} sorts after {row!r}")

    def _match(self, step: MergeStep) -> bool:
        self.matching_rows += 1
        if self.options.debug > 2:
            self.log.debug(f"Matching rows: {self._source_row!r}")
        self._source_row = self._dest_row = None
        return True

    def _cap_reached(self, cap: str, applied: int) -> bool:
        limit = getattr(self.options, cap)
        if not limit or self.options.force or applied < limit:
            return False
        setattr(self, f"hit_{cap}", True)
        self.log.warning(f"Reached {cap}={limit}, stopping merge")
        self.metrics.record_cap_hit(self.options.dest_table, cap)
        add_span_event("tablesync.cap_hit", cap=cap, limit=limit)
        return True

    def _delete(self, step: MergeStep) -> bool:
        if self._cap_reached("max_deletes", self.deletes):
            return False

        row = self._dest_row
        self.deletes += 1
        if self.options.debug:
            reason = "out of source rows" if step is MergeStep.DEST_ONLY else "source row sorts after dest row"
            self.log.debug(f"({self.deletes}) {reason}, deleting destination row")
        if not self.options.dry_run:
            try:
                count = self.dest.delete_row(*row)
            except ClientError as e:
                raise SyncFailedError(f"delete from dest failed: {e}") from e
            if self.options.debug > 1:
                self.log.debug(f"Deleted ({count}): {row!r}")

        self._dest_row = None
        return True

    def _insert(self, step: MergeStep) -> bool:
        if self._cap_reached("max_inserts", self.inserts):
            return False

        row = self._source_row
        self.inserts += 1
        if self.options.debug:
            reason = "out of dest rows" if step is MergeStep.SOURCE_ONLY else "source row sorts before dest row"
            self.log.debug(f"({self.inserts}) {reason}, inserting source row")
        if not self.options.dry_run:
            try:
                count = self.dest.delete_uniq(*row)
            except ClientError as e:
                raise SyncFailedError(f"delete unique from dest failed: {e}") from e
            if count and self.options.debug > 1:
                self.log.debug(f"Deleted (unique) ({count}): {row!r}")
            try:
                self.dest.insert_row(*row)
            except ClientError as e:
                raise SyncFailedError(f"insert into dest failed: {e}") from e

        self._source_row = None
        return True

    # ------------------------------------------------------------------
    # Finalize
    # ------------------------------------------------------------------

    def _empty_source_message(self) -> str:
        return (
            f"Check for empty source table failed. (Matching={self.matching_rows} "
            f"Inserts={self.inserts} SeenSource={self.seen_source_rows})"
        )

    def finalize(self) -> None:
        self._enter(SyncState.FINALIZING)
        options = self.options

        if options.check_empty_source:
            emptied = not self.capped and self.matching_rows + self.inserts < 1
            if emptied or self.seen_source_rows < 1:
                raise SyncFailedError(self._empty_source_message())

        if options.dumpfile:
            self._dump(self.source, "src", self.source.connections.read)
            self._dump(self.dest, "dest", self.dest.connections.write)

        try:
            self.final_dest_rows = self.dest.row_count()
        except ClientError as e:
            raise SyncFailedError(str(e)) from e
        self.log.debug(f"Final row count = {self.final_dest_rows}")

        if (
            not options.ignore_row_count
            and not options.dry_run
            and not self.capped
            and self.final_dest_rows != self.seen_source_rows
        ):
            # The applied changes are kept; the mismatch points at the key definition
            self._close()
            raise SyncFailedError(
                f"final dest row count ({self.final_dest_rows}) did not match source "
                f"({self.seen_source_rows}), check primary key definition"
            )

        self._run_hook("post_sync_check")
        self._close()
        self._enter(SyncState.COMMITTED)
        self.log.info(f"Done with sync of {options.source_table} to {options.dest_table}")
        self._run_hook("post_commit_check")

    def _close(self) -> None:
        try:
            self.source.close_queries()
            self.dest.close_queries()
        except ClientError as e:
            raise SyncFailedError(str(e)) from e

    def _dump(self, client: RowSourceClient, stage: str, connection: Any) -> None:
        path = dump_path(self.options.dumpfile, stage)
        try:
            dump_table(client, path, connection)
        except Exception as e:
            raise SyncFailedError(f"unable to dump {client.table} to {path}: {e}") from e

    def fail(self, message: str) -> None:
        """
        Record a failure, roll back the destination and release both clients.
        """
        self.state = SyncState.FAILED
        self.error = message
        self.log.error(f"Sync failed: {message}")
        for client in (self.dest, self.source):
            if client is not None:
                client.abort()

    # ------------------------------------------------------------------
    # Result
    # ------------------------------------------------------------------

    def result(self) -> SyncResult:
        if self._finished is None:
            self._finished = time.time()
            self._cpu_finished = os.times()

        dest = self.dest
        applied = dest is not None and not self.options.dry_run
        return SyncResult(
            status="failed" if self.state is SyncState.FAILED else "ok",
            error=self.error,
            inserts=dest.inserts if applied else self.inserts,
            deletes=dest.deletes if applied else self.deletes,
            commits=dest.commits if dest is not None else 0,
            seen_source_rows=self.seen_source_rows,
            seen_dest_rows=self.seen_dest_rows,
            final_dest_rows=self.final_dest_rows,
            matching_rows=self.matching_rows,
            elapsed=self._finished - self._started,
            elapsed_user_cpu=self._cpu_finished.user - self._cpu_started.user,
            elapsed_system_cpu=self._cpu_finished.system - self._cpu_started.system,
            elapsed_fetch_source=self.fetch_source_time,
            elapsed_fetch_dest=self.fetch_dest_time,
            hit_max_inserts=self.hit_max_inserts,
            hit_max_deletes=self.hit_max_deletes,
        )


class TableSync:
    """
    Synchronizes a destination table to match a source table.

    Usage:
        sync = TableSync(force=False, max_deletes=1000)
        result = sync.sync_tables(
            source_db=src_conn,
            source_table="dbo.customers",
            dest_db=pg_conn,
            dest_table="public.customers",
        )
        if not result.ok:
            print(result.error)
    """

    def __init__(self, metrics: SyncMetrics | None = None, **defaults):
        """
        Initialize synchronizer

        Args:
            metrics: Metrics sink (default: SyncMetrics on the global registry)
            **defaults: SyncOptions values applied to every run

        Raises:
            TypeError: On an unknown option name
        """
        unknown = set(defaults) - SyncOptions.names()
        if unknown:
            raise TypeError(f"unknown sync options: {', '.join(sorted(unknown))}")
        self.defaults = defaults
        self.metrics = metrics if metrics is not None else SyncMetrics()
        self._unique_keys = UniqueKeyIntrospector()

    def get_unique_keys(self, db: Any, owner: str | None, table: str, engine: str | None = None) -> dict[str, list[str]]:
        """
        Unique key sets of a table, cached per connection.

        Args:
            db: DB-API connection or {"read", "write"} mapping (write side is used)
            owner: Schema / owner, None for the current schema
            table: Bare table name
            engine: Engine override
        """
        connection = ConnectionPair.from_handle(db).write
        return self._unique_keys.get_unique_keys(connection, owner, table, engine=engine)

    def sync_tables(self, **options) -> SyncResult:
        """
        Converge the destination table to the source table.

        Args:
            **options: SyncOptions values overriding the instance defaults

        Returns:
            SyncResult; status "failed" with an error message on any failure

        Raises:
            TypeError: On an unknown option name
            ValueError: On an invalid option value
            OrderingError: If either side's rows arrive out of merge order
        """
        run = SyncRun(SyncOptions.merged(self.defaults, options), self._unique_keys, self.metrics)
        opts = run.options

        with trace_operation(
            "tablesync.sync_tables",
            source_table=opts.source_table,
            dest_table=opts.dest_table,
            dry_run=opts.dry_run,
        ):
            try:
                run.execute()
            except SyncFailedError as e:
                run.fail(str(e))
            except OrderingError as e:
                run.fail(str(e))
                self._record(run, run.result())
                raise
            except Exception as e:
                run.log.exception(f"Unexpected error during sync in state {run.state.value}")
                run.fail(f"unexpected error: {type(e).__name__}: {e}")

            result = run.result()
            add_span_attributes(
                status=result.status,
                inserts=result.inserts,
                deletes=result.deletes,
                matching_rows=result.matching_rows,
            )

        self._record(run, result)
        return result

    def _record(self, run: SyncRun, result: SyncResult) -> None:
        table_name = run.options.dest_table or "unknown"
        self.metrics.record_run(
            table_name,
            success=result.ok,
            duration=result.elapsed,
            inserts=result.inserts,
            deletes=result.deletes,
            matching_rows=result.matching_rows,
        )
        if result.ok:
            run.log.info(
                f"Sync finished: inserts={result.inserts}, deletes={result.deletes}, "
                f"matching={result.matching_rows}, commits={result.commits}, "
                f"elapsed={result.elapsed:.2f}s"
            )
