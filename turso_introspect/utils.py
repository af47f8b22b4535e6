"""
utils
=====

Small, shared utilities used across the codebase.

This module intentionally contains only low-level helpers that are safe to
import from anywhere (no database calls, no heavy imports).

Functions
---------
- :func:`safe_name`:
  Convert an arbitrary identifier (database name, URL) into a filesystem-safe
  filename component.
- :func:`quote_ident`:
  Quote a SQL identifier when SQLite would not accept it bare.
- :func:`read_text` / :func:`write_text`:
  UTF-8 file helpers with normalized newlines.
"""

from __future__ import annotations

import re
from pathlib import Path

_BARE_IDENT = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# SQLite keyword list (https://www.sqlite.org/lang_keywords.html).
SQLITE_KEYWORDS = frozenset(
    """
    ABORT ACTION ADD AFTER ALL ALTER ALWAYS ANALYZE AND AS ASC ATTACH
    AUTOINCREMENT BEFORE BEGIN BETWEEN BY CASCADE CASE CAST CHECK COLLATE
    COLUMN COMMIT CONFLICT CONSTRAINT CREATE CROSS CURRENT CURRENT_DATE
    CURRENT_TIME CURRENT_TIMESTAMP DATABASE DEFAULT DEFERRABLE DEFERRED DELETE
    DESC DETACH DISTINCT DO DROP EACH ELSE END ESCAPE EXCEPT EXCLUDE EXCLUSIVE
    EXISTS EXPLAIN FAIL FILTER FIRST FOLLOWING FOR FOREIGN FROM FULL GENERATED
    GLOB GROUP GROUPS HAVING IF IGNORE IMMEDIATE IN INDEX INDEXED INITIALLY
    INNER INSERT INSTEAD INTERSECT INTO IS ISNULL JOIN KEY LAST LEFT LIKE LIMIT
    MATCH MATERIALIZED NATURAL NO NOT NOTHING NOTNULL NULL NULLS OF OFFSET ON
    OR ORDER OTHERS OUTER OVER PARTITION PLAN PRAGMA PRECEDING PRIMARY QUERY
    RAISE RANGE RECURSIVE REFERENCES REGEXP REINDEX RELEASE RENAME REPLACE
    RESTRICT RETURNING RIGHT ROLLBACK ROW ROWS SAVEPOINT SELECT SET TABLE TEMP
    TEMPORARY THEN TIES TO TRANSACTION TRIGGER UNBOUNDED UNION UNIQUE UPDATE
    USING VACUUM VALUES VIEW VIRTUAL WHEN WHERE WINDOW WITH WITHOUT
    """.split()
)


def needs_quoting(name: str) -> bool:
    """Return True if *name* cannot be used as a bare SQLite identifier."""
    return _BARE_IDENT.match(name) is None or name.upper() in SQLITE_KEYWORDS


def quote_ident(name: str) -> str:
    """Return *name* as a SQL identifier, quoted only when required.

    Embedded double quotes are escaped by doubling them.

    Examples
    --------
    >>> quote_ident("users")
    'users'
    >>> quote_ident("order")
    '"order"'
    >>> quote_ident('my "odd" table')
    '"my ""odd"" table"'
    """
    if not needs_quoting(name):
        return name
    return '"' + name.replace('"', '""') + '"'


def safe_name(value: str) -> str:
    """Return a filesystem-safe version of *value*.

    Used to derive the default output filename from a database name or URL.

    >>> safe_name("libsql://my-db.turso.io")
    'libsql_my_db_turso_io'
    >>> safe_name("")
    'unnamed'
    """
    out = re.sub(r"[^A-Za-z0-9]+", "_", value).strip("_")
    return out or "unnamed"


def read_text(path: Path) -> str:
    """Read UTF-8 text from *path*; return an empty string if it does not exist."""
    if not path.exists():
        return ""
    return path.read_text(encoding="utf-8", errors="replace")


def write_text(path: Path, content: str) -> None:
    """Write UTF-8 text to *path* with normalized newlines."""
    path.parent.mkdir(parents=True, exist_ok=True)
    content = content.replace("\r\n", "\n").replace("\r", "\n")
    path.write_text(content, encoding="utf-8")
