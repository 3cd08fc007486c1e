"""
Sync run configuration and result types.
"""

from collections.abc import Callable, Sequence
from dataclasses import asdict, dataclass, fields
from typing import Any

Hook = Callable[["SyncOptions"], Any]

REQUIRED_OPTIONS = ("source_db", "source_table", "dest_db", "dest_table")

HOOK_NAMES = ("pre_setup_check", "pre_select_check", "post_sync_check", "post_commit_check")


@dataclass
class SyncOptions:
    """
    Options of one sync run.

    ``source_db`` / ``dest_db`` are DB-API connections, or mappings with
    "read" and "write" connections. Caps of 0 or None mean unlimited.
    Hooks receive these options and abort the run by returning a
    non-empty value, which becomes the error message.
    """

    source_db: Any = None
    source_table: str | None = None
    dest_db: Any = None
    dest_table: str | None = None

    source_where: str | None = None
    source_args: Sequence[Any] | None = None
    source_alias: str | None = None
    source_engine: str | None = None
    dest_where: str | None = None
    dest_args: Sequence[Any] | None = None
    dest_alias: str | None = None
    dest_engine: str | None = None

    excl_cols: str | Sequence[str] | None = None
    mask_cols: str | Sequence[str] | None = None
    unique_keys: Any = None
    ukey_sort: bool | Sequence[str] = False

    max_inserts: int | None = None
    max_deletes: int | None = None

    dry_run: bool = False
    force: bool = False
    compare_schemas: bool = True
    no_dups: bool = False
    check_empty_source: bool = False
    ignore_row_count: bool = False
    verify_order: bool = True

    row_count_interval: int = 1000
    fetch_size: int = 1000
    dumpfile: str | None = None
    debug: int = 0

    pre_setup_check: Hook | None = None
    pre_select_check: Hook | None = None
    post_sync_check: Hook | None = None
    post_commit_check: Hook | None = None

    def __post_init__(self):
        for name in ("max_inserts", "max_deletes"):
            value = getattr(self, name)
            if value is not None and (not isinstance(value, int) or value < 0):
                raise ValueError(f"{name} must be a non-negative integer, got {value!r}")
        for name in ("row_count_interval", "fetch_size"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 1:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")
        for name in HOOK_NAMES:
            hook = getattr(self, name)
            if hook is not None and not callable(hook):
                raise ValueError(f"{name} must be callable")

    @classmethod
    def merged(cls, defaults: dict[str, Any], overrides: dict[str, Any]) -> "SyncOptions":
        """
        Build options from instance defaults overlaid with per-call values.

        Raises:
            TypeError: On an unknown option name
        """
        return cls(**{**defaults, **overrides})

    @classmethod
    def names(cls) -> set[str]:
        return {f.name for f in fields(cls)}

    def missing_required(self) -> list[str]:
        return [name for name in REQUIRED_OPTIONS if not getattr(self, name)]

    def client_options(self, side: str) -> dict[str, Any]:
        """
        Keyword arguments for the client of one side.

        Args:
            side: "source" or "dest"
        """
        return {
            "where": getattr(self, f"{side}_where"),
            "args": getattr(self, f"{side}_args"),
            "alias": getattr(self, f"{side}_alias"),
            "engine": getattr(self, f"{side}_engine"),
            "excl_cols": self.excl_cols,
            "mask_cols": self.mask_cols,
            "ukey_sort": self.ukey_sort,
            "no_dups": self.no_dups,
            "dry_run": self.dry_run,
            "force": self.force,
            "fetch_size": self.fetch_size,
        }


@dataclass
class SyncResult:
    """
    Outcome of one sync run.

    ``status`` is "ok" or "failed"; a failed run carries a single
    descriptive ``error``. Counts reflect what was applied (or, in dry-run,
    what would have been) up to the point the run stopped.
    """

    status: str = "ok"
    error: str | None = None
    inserts: int = 0
    deletes: int = 0
    commits: int = 0
    seen_source_rows: int = 0
    seen_dest_rows: int = 0
    final_dest_rows: int | None = None
    matching_rows: int = 0
    elapsed: float = 0.0
    elapsed_user_cpu: float = 0.0
    elapsed_system_cpu: float = 0.0
    elapsed_fetch_source: float = 0.0
    elapsed_fetch_dest: float = 0.0
    hit_max_inserts: bool = False
    hit_max_deletes: bool = False

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dictionary."""
        return asdict(self)
