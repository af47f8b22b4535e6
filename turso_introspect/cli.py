#!/usr/bin/env python3
"""
cli
===

Command-line entry point.

Introspect a database into an executable SQL script (or a JSON document)::

    turso-introspect introspect libsql://my-db-my-org.turso.io
    turso-introspect introspect my-db --org my-org --format json --stdout
    turso-introspect introspect ./local.db --tables users,orders -o schema.sql

The ``introspect`` subcommand name may be omitted::

    turso-introspect ./local.db --stdout

Compare two sources (databases, saved ``.sql`` scripts or ``.json`` documents)::

    turso-introspect diff prod.sql libsql://staging-my-org.turso.io
    turso-introspect diff old.db new.db --diff-format migration

Exit codes: 0 success, 1 connection / unexpected error, 2 invalid arguments,
3 not found.
"""

from __future__ import annotations

import argparse
import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from . import __version__
from .auth import resolve_target
from .collectors import check_connection, introspect_schema
from .config import Settings, load_config, read_settings
from .connection import create_client
from .console import Logger, configure_logging
from .diffing import DiffFormat, diff_schemas
from .errors import CliError, ConnectionFailed, SchemaError, connection_error
from .formatting import format_json, format_sql, snapshot_from_json
from .retry import RetryError
from .schema import Snapshot
from .utils import read_text, safe_name, write_text

COMMANDS = ("introspect", "diff")
SQLITE_MAGIC = b"SQLite format 3\x00"
# options that consume the following argument
VALUE_OPTIONS = frozenset(
    {
        "--org", "--token", "--config", "--retries", "--retry-delay",
        "-o", "--output", "--format", "--tables", "--exclude-tables", "--diff-format",
    }
)


def _add_common_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--org", default=None, help="Organization name (required when using a db name)")
    parser.add_argument("--token", default=None, help="Authentication token (overrides TURSO_AUTH_TOKEN)")
    parser.add_argument("--config", type=Path, default=None, help="Path to a YAML config file")
    parser.add_argument("--retries", default=None, help="Retries per catalog query (default: 3)")
    parser.add_argument("--retry-delay", default=None, help="Base retry delay in milliseconds (default: 500)")
    parser.add_argument("-q", "--quiet", action="store_true", help="Suppress warnings and informational output")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show detailed progress information")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="turso-introspect",
        description="Introspect and diff the schema of SQLite / libSQL (Turso) databases.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    intro = subparsers.add_parser("introspect", help="Dump a database schema")
    intro.add_argument("database", help="Database URL (libsql://...), name, or local SQLite file")
    _add_common_args(intro)
    intro.add_argument("-o", "--output", type=Path, default=None, help="Output file (default: {db}-schema.{sql|json})")
    intro.add_argument("--stdout", action="store_true", help="Write to stdout instead of a file")
    intro.add_argument("--format", default=None, choices=["sql", "json"], help="Output format (default: sql)")
    intro.add_argument("--tables", default=None, help="Comma-separated tables to include (names, LIKE or re: patterns)")
    intro.add_argument("--exclude-tables", default=None, help="Comma-separated tables to exclude")
    intro.add_argument("--include-system", action="store_true", help="Include SQLite/libSQL system objects")
    intro.add_argument("--check", action="store_true", help="Validate the connection without producing output")

    diff = subparsers.add_parser("diff", help="Compare schemas between two sources")
    diff.add_argument("source_a", help="First source: database or saved .sql/.json file")
    diff.add_argument("source_b", help="Second source: database or saved .sql/.json file")
    diff.add_argument(
        "--diff-format",
        default=DiffFormat.UNIFIED.value,
        choices=[f.value for f in DiffFormat],
        help="Output format: diff (default) or migration",
    )
    _add_common_args(diff)
    return parser


def _load_cfg(path: Optional[Path]) -> Dict[str, Any]:
    return load_config(path) if path is not None else {}


def collect_snapshot(database: str, settings: Settings) -> Snapshot:
    """Connect to *database* and collect its snapshot."""
    target = resolve_target(database, settings.org, settings.token)
    with create_client(target) as client:
        return introspect_schema(
            client,
            database,
            settings.introspect_options(),
            retries=settings.retries,
            base_delay=settings.base_delay,
        )


def _is_sqlite_file(path: Path) -> bool:
    with path.open("rb") as f:
        return f.read(len(SQLITE_MAGIC)) == SQLITE_MAGIC


def load_source_sql(source: str, settings: Settings) -> str:
    """Return the SQL text for one side of a diff.

    Saved ``.json`` documents are re-rendered, other text files are read
    verbatim, and anything else (including SQLite files) is introspected.
    """
    path = Path(source)
    if path.is_file() and not _is_sqlite_file(path):
        text = read_text(path)
        if path.suffix.lower() == ".json":
            return format_sql(snapshot_from_json(text))
        return text
    return format_sql(collect_snapshot(source, settings))


def run_introspect(args: argparse.Namespace, log: Logger) -> int:
    settings = read_settings(_load_cfg(args.config), args)

    if args.check:
        target = resolve_target(args.database, settings.org, settings.token)
        try:
            with create_client(target) as client:
                check_connection(client)
        except (ConnectionFailed, RetryError) as exc:
            raise connection_error(f"Connection failed: {exc}") from exc
        log.success("Connection successful!")
        return 0

    if not args.stdout:
        log.info(f"Introspecting {args.database}...")
    snapshot = collect_snapshot(args.database, settings)

    if snapshot.is_empty():
        log.warn("No user tables found in database.")
    log.verbose(
        f"Found {len(snapshot.tables)} tables, {len(snapshot.views)} views, "
        f"{len(snapshot.triggers)} triggers"
    )

    output = format_json(snapshot) if settings.format == "json" else format_sql(snapshot)
    if args.stdout:
        print(output, end="")
        return 0

    out_path = args.output or Path(f"{safe_name(args.database)}-schema.{settings.format}")
    write_text(out_path, output)
    log.success(f"Schema saved to {out_path}")
    return 0


def run_diff(args: argparse.Namespace, log: Logger) -> int:
    settings = read_settings(_load_cfg(args.config), args)
    log.info(f"Comparing {args.source_a} and {args.source_b}...")

    with ThreadPoolExecutor(max_workers=2) as pool:
        futures = [pool.submit(load_source_sql, s, settings) for s in (args.source_a, args.source_b)]
        sql_a, sql_b = (f.result() for f in futures)

    result = diff_schemas(sql_a, sql_b, args.source_a, args.source_b, DiffFormat(args.diff_format))
    for warning in result.warnings:
        log.warn(warning)
    if result.identical:
        log.success("Schemas are identical.")
        return 0

    log.verbose(f"{result.added_count} line(s) added, {result.removed_count} line(s) removed")
    print(result.patch, end="")
    return 0


def _first_positional(argv: List[str]) -> Optional[int]:
    """Index of the first argument that is neither an option nor its value."""
    skip_value = False
    for i, arg in enumerate(argv):
        if skip_value:
            skip_value = False
        elif arg.startswith("-"):
            skip_value = arg in VALUE_OPTIONS
        else:
            return i
    return None


def _normalize_argv(argv: List[str]) -> List[str]:
    """Put the subcommand first; ``introspect`` is implied when none is given.

    ``turso-introspect -v ./app.db`` and ``turso-introspect -q diff a b`` are
    rewritten to ``introspect -v ./app.db`` and ``diff -q a b``.
    """
    i = _first_positional(argv)
    if i is None:
        return argv
    if argv[i] in COMMANDS:
        return [argv[i], *argv[:i], *argv[i + 1:]]
    return ["introspect", *argv]


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the CLI; return the process exit code."""
    parser = build_parser()
    args = parser.parse_args(_normalize_argv(list(sys.argv[1:] if argv is None else argv)))
    log = Logger(quiet=args.quiet, verbose=args.verbose)
    configure_logging(verbose=args.verbose, quiet=args.quiet)

    try:
        if args.command == "diff":
            return run_diff(args, log)
        return run_introspect(args, log)
    except CliError as exc:
        log.error(exc.message)
        return exc.code
    except (ConnectionFailed, RetryError, SchemaError, OSError, ValueError) as exc:
        log.error(str(exc))
        return 1
    except Exception as exc:
        log.error(f"Unexpected error: {exc!r}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
