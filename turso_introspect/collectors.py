"""
collectors
==========

Snapshot collection from a live SQLite / libSQL database.

This module runs the catalog queries (``sqlite_master`` and the ``PRAGMA``
table/index/foreign-key functions) through a client from
:mod:`turso_introspect.connection` and coerces the rows into a
:class:`~turso_introspect.schema.Snapshot`.

Design choices
--------------
- Every catalog call goes through :func:`~turso_introspect.retry.call_with_retry`.
- System objects (``sqlite_*``, ``_litestream_*``, ``_cf_*``) are skipped
  unless explicitly requested; this applies to tables, views and triggers.
- Include/exclude filtering applies to *tables* only.
- Each table's metadata is fetched independently of every other table.

Public helpers
--------------
- :func:`filter_tables` (include/exclude patterns)
- :func:`introspect_schema`
- :func:`check_connection`
"""

from __future__ import annotations

import datetime as dt
import fnmatch
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Sequence

from .retry import DEFAULT_BASE_DELAY, DEFAULT_RETRIES, call_with_retry
from .schema import (
    Column,
    ForeignKey,
    Index,
    Snapshot,
    SnapshotMetadata,
    Table,
    Trigger,
    View,
)
from .utils import quote_ident

logger = logging.getLogger(__name__)

SYSTEM_PREFIXES = ("sqlite_", "_litestream_", "_cf_")
DEFAULT_WORKERS = 4

# ---- catalog queries ----
Q_MASTER = (
    "SELECT type, name, sql, tbl_name FROM sqlite_master "
    "WHERE sql IS NOT NULL ORDER BY name"
)


def q_table_info(table: str) -> str:
    return f"PRAGMA table_info({quote_ident(table)})"


def q_foreign_key_list(table: str) -> str:
    return f"PRAGMA foreign_key_list({quote_ident(table)})"


def q_index_list(table: str) -> str:
    return f"PRAGMA index_list({quote_ident(table)})"


def q_index_info(index: str) -> str:
    return f"PRAGMA index_info({quote_ident(index)})"


@dataclass(frozen=True)
class TableFilter:
    """Include/exclude patterns for table selection."""

    include: List[str] = field(default_factory=list)
    exclude: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class IntrospectOptions:
    """Controls which objects end up in the snapshot."""

    table_filter: TableFilter = field(default_factory=TableFilter)
    include_system: bool = False


# ---- table filter helpers ----
def sql_like_to_fnmatch(pattern: str) -> str:
    """Convert SQL LIKE patterns (% and _) to fnmatch syntax (* and ?)."""
    return pattern.replace("%", "*").replace("_", "?")


def matches_pattern(name: str, pattern: str) -> bool:
    """Return True if name matches pattern.

    A pattern is a regex prefixed with ``re:``, a SQL LIKE pattern when it
    contains ``%``, or else an exact table name (so ``tmp_1`` never matches
    ``tmpX1``). Matching is case-sensitive, like SQLite's ``PRAGMA`` lookups.
    """
    if pattern.startswith("re:"):
        return re.search(pattern[3:], name) is not None
    if "%" in pattern:
        return fnmatch.fnmatchcase(name, sql_like_to_fnmatch(pattern))
    return name == pattern


def filter_tables(tables: Sequence[str], include: Sequence[str], exclude: Sequence[str]) -> List[str]:
    """Filter tables using include/exclude patterns, keeping input order.

    Include patterns keep a table if it matches *any* include pattern.
    Exclude patterns drop a table if it matches *any* exclude pattern.
    """
    result = list(tables)
    if include:
        result = [t for t in result if any(matches_pattern(t, p) for p in include)]
    if exclude:
        result = [t for t in result if not any(matches_pattern(t, p) for p in exclude)]
    return result


def is_system_object(name: str) -> bool:
    return name.startswith(SYSTEM_PREFIXES)


# ---- collection ----
def _fetch_indexes(run: Callable[[str], List[Dict[str, Any]]], table: str, index_sql: Dict[str, str]) -> List[Index]:
    indexes: List[Index] = []
    for row in run(q_index_list(table)):
        name = str(row["name"])
        info = sorted(run(q_index_info(name)), key=lambda r: int(r["seqno"]))
        indexes.append(
            Index.from_row(
                {
                    **row,
                    "columns": [r.get("name") for r in info],
                    "sql": index_sql.get(name),
                }
            )
        )
    return indexes


def collect_table(run: Callable[[str], List[Dict[str, Any]]], name: str, sql: str, index_sql: Dict[str, str]) -> Table:
    """Collect columns, foreign keys and indexes for one table."""
    logger.debug("Collecting metadata for table %s", name)
    return Table(
        name=name,
        sql=sql,
        columns=tuple(Column.from_row(r) for r in run(q_table_info(name))),
        foreign_keys=tuple(ForeignKey.from_row(r) for r in run(q_foreign_key_list(name))),
        indexes=tuple(_fetch_indexes(run, name, index_sql)),
    )


def introspect_schema(
    client: Any,
    database: str,
    options: IntrospectOptions = IntrospectOptions(),
    retries: int = DEFAULT_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_workers: int = DEFAULT_WORKERS,
) -> Snapshot:
    """Collect a :class:`Snapshot` from *client*.

    Parameters
    ----------
    client:
        Any object with ``execute(sql) -> list[dict]`` (see
        :mod:`turso_introspect.connection`).
    database:
        Source identifier recorded in the snapshot metadata.
    options:
        System-object and table filtering.
    retries, base_delay:
        Retry policy applied to every catalog call.
    max_workers:
        Tables whose metadata is fetched concurrently. ``1`` fetches them
        one after another.

    Returns
    -------
    Snapshot
        Tables sorted by name; views and triggers in catalog (name) order.
    """

    def run(sql: str) -> List[Dict[str, Any]]:
        return call_with_retry(lambda: client.execute(sql), retries=retries, base_delay=base_delay)

    master = run(Q_MASTER)
    index_sql = {str(r["name"]): str(r["sql"]) for r in master if r["type"] == "index"}

    def keep(name: str) -> bool:
        return options.include_system or not is_system_object(name)

    table_rows = {
        str(r["name"]): str(r["sql"]) for r in master if r["type"] == "table" and keep(str(r["name"]))
    }
    selected = filter_tables(
        list(table_rows), options.table_filter.include, options.table_filter.exclude
    )

    views = [View.from_row(r) for r in master if r["type"] == "view" and keep(str(r["name"]))]
    triggers = [Trigger.from_row(r) for r in master if r["type"] == "trigger" and keep(str(r["name"]))]
    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
        tables = list(pool.map(lambda name: collect_table(run, name, table_rows[name], index_sql), selected))
    tables.sort(key=lambda t: t.name)
    logger.debug(
        "Collected %d tables, %d views, %d triggers from %s",
        len(tables), len(views), len(triggers), database,
    )

    return Snapshot(
        metadata=SnapshotMetadata(
            database=database,
            timestamp=dt.datetime.now(dt.timezone.utc).isoformat(timespec="milliseconds"),
        ),
        tables=tuple(tables),
        views=tuple(views),
        triggers=tuple(triggers),
    )


def check_connection(client: Any, retries: int = 0, base_delay: float = DEFAULT_BASE_DELAY) -> None:
    """Run ``SELECT 1``; raise if the database cannot be reached."""
    call_with_retry(lambda: client.execute("SELECT 1"), retries=retries, base_delay=base_delay)
