"""
formatting
==========

Render a :class:`~turso_introspect.schema.Snapshot` as text.

Two renderings are provided:

- :func:`format_sql`: an executable SQL script. Tables are emitted in
  dependency order (see :mod:`turso_introspect.ordering`), followed by their
  explicit indexes, then every foreign key as a trailing ``ALTER TABLE``,
  then views and triggers.
- :func:`format_json`: a structured JSON document in declaration order, for
  machine consumption. :func:`snapshot_from_json` reads it back.

Table, view, trigger and explicit index bodies are copied verbatim from the
source definitions rather than rebuilt column by column, so dialect-specific
syntax survives unchanged.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Sequence

from .errors import SchemaError
from .ordering import order_tables
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

HEADER_SOURCE_PREFIX = "-- Schema: "
HEADER_TIMESTAMP_PREFIX = "-- Generated: "
HEADER_VERSION_PREFIX = "-- Format version: "

_OMITTED_ACTIONS = {"", "NO ACTION"}
_OMITTED_MATCH = {"", "NONE", "SIMPLE"}


def _terminate(sql: str) -> str:
    sql = sql.strip()
    return sql if sql.endswith(";") else sql + ";"


def _column_list(names: Sequence[str]) -> str:
    return "(" + ", ".join(quote_ident(n) for n in names) + ")"


def format_header(metadata: SnapshotMetadata) -> str:
    return "\n".join(
        [
            f"{HEADER_SOURCE_PREFIX}{metadata.database}",
            f"{HEADER_TIMESTAMP_PREFIX}{metadata.timestamp}",
            f"{HEADER_VERSION_PREFIX}{metadata.version}",
        ]
    )


def format_index(table: Table, index: Index) -> str:
    """Return the ``CREATE INDEX`` statement for an explicit index.

    The original definition is used when known. Otherwise a plain statement is
    synthesized from the column list; partial and expression indexes cannot be
    rebuilt that way and are written as a comment instead.
    """
    if index.sql:
        return _terminate(index.sql)
    if index.partial or not index.columns or any(not c for c in index.columns):
        return f"-- index {index.name} on {table.name}: definition unavailable"
    unique = "UNIQUE " if index.unique else ""
    return (
        f"CREATE {unique}INDEX {quote_ident(index.name)} "
        f"ON {quote_ident(table.name)} {_column_list(index.columns)};"
    )


def format_foreign_key(table: Table, group: Sequence[ForeignKey]) -> str:
    """Return one ``ALTER TABLE ... ADD FOREIGN KEY`` for a foreign key group."""
    first = group[0]
    parts = [
        f"ALTER TABLE {quote_ident(table.name)} ADD FOREIGN KEY",
        _column_list([fk.from_column for fk in group]),
        f"REFERENCES {quote_ident(first.table)}",
    ]
    if all(fk.to_column for fk in group):
        parts.append(_column_list([fk.to_column for fk in group]))
    if first.on_update.upper() not in _OMITTED_ACTIONS:
        parts.append(f"ON UPDATE {first.on_update}")
    if first.on_delete.upper() not in _OMITTED_ACTIONS:
        parts.append(f"ON DELETE {first.on_delete}")
    if first.match.upper() not in _OMITTED_MATCH:
        parts.append(f"MATCH {first.match}")
    return " ".join(parts) + ";"


def format_virtual_table(table: Table) -> str:
    lines = [f"-- Virtual table {table.name} (requires a SQLite extension, not executed):"]
    lines.extend(f"-- {line}".rstrip() for line in _terminate(table.sql).splitlines())
    return "\n".join(lines)


def format_table(table: Table) -> str:
    """Return the table definition followed by its explicit indexes."""
    if table.is_virtual:
        return format_virtual_table(table)
    statements = [_terminate(table.sql)]
    statements.extend(format_index(table, idx) for idx in table.explicit_indexes())
    return "\n".join(statements)


def format_sql(snapshot: Snapshot) -> str:
    """Render *snapshot* as an executable SQL script.

    The output depends only on *snapshot*: rendering the same snapshot twice
    gives identical text.
    """
    blocks: List[str] = [format_header(snapshot.metadata)]
    by_name = {t.name: t for t in snapshot.tables}
    ordered = [by_name[name] for name in order_tables(snapshot)]

    if ordered:
        blocks.append("-- Tables")
        blocks.extend(format_table(t) for t in ordered)

    fk_statements = [
        format_foreign_key(table, group)
        for table in ordered
        if not table.is_virtual
        for group in table.foreign_key_groups()
    ]
    if fk_statements:
        blocks.append("-- Foreign keys\n" + "\n".join(fk_statements))

    if snapshot.views:
        blocks.append("-- Views")
        blocks.extend(_terminate(v.sql) for v in snapshot.views)

    if snapshot.triggers:
        blocks.append("-- Triggers")
        blocks.extend(_terminate(t.sql) for t in snapshot.triggers)

    return "\n\n".join(blocks) + "\n"


# ---- structured document ----
def _column_dict(column: Column) -> Dict[str, Any]:
    return {
        "cid": column.cid,
        "name": column.name,
        "type": column.type,
        "notnull": column.notnull,
        "dflt_value": column.default,
        "pk": column.pk,
    }


def _foreign_key_dict(fk: ForeignKey) -> Dict[str, Any]:
    return {
        "id": fk.group_id,
        "seq": fk.seq,
        "table": fk.table,
        "from": fk.from_column,
        "to": fk.to_column,
        "on_update": fk.on_update,
        "on_delete": fk.on_delete,
        "match": fk.match,
    }


def _index_dict(index: Index) -> Dict[str, Any]:
    return {
        "name": index.name,
        "unique": index.unique,
        "origin": index.origin.value,
        "partial": index.partial,
        "columns": list(index.columns),
        "sql": index.sql,
    }


def snapshot_to_dict(snapshot: Snapshot) -> Dict[str, Any]:
    """Return a JSON-serializable tree for *snapshot* in declaration order."""
    return {
        "metadata": {
            "database": snapshot.metadata.database,
            "timestamp": snapshot.metadata.timestamp,
            "version": snapshot.metadata.version,
        },
        "tables": [
            {
                "name": t.name,
                "sql": t.sql,
                "columns": [_column_dict(c) for c in t.columns],
                "foreign_keys": [_foreign_key_dict(fk) for fk in t.foreign_keys],
                "indexes": [_index_dict(i) for i in t.indexes],
            }
            for t in snapshot.tables
        ],
        "views": [{"name": v.name, "sql": v.sql} for v in snapshot.views],
        "triggers": [{"name": t.name, "sql": t.sql} for t in snapshot.triggers],
    }


def snapshot_from_dict(data: Dict[str, Any]) -> Snapshot:
    """Rebuild a :class:`Snapshot`; a malformed document raises :class:`SchemaError`."""
    try:
        return Snapshot(
            metadata=SnapshotMetadata.from_row(data.get("metadata") or {}),
            tables=tuple(Table.from_row(t) for t in data.get("tables") or ()),
            views=tuple(View.from_row(v) for v in data.get("views") or ()),
            triggers=tuple(Trigger.from_row(t) for t in data.get("triggers") or ()),
        )
    except (KeyError, TypeError, AttributeError) as exc:
        raise SchemaError(f"malformed schema document: missing or invalid {exc}") from exc


def format_json(snapshot: Snapshot) -> str:
    """Render *snapshot* as an indented JSON document."""
    return json.dumps(snapshot_to_dict(snapshot), indent=2, ensure_ascii=False) + "\n"


def snapshot_from_json(text: str) -> Snapshot:
    """Rebuild a :class:`Snapshot` from :func:`format_json` output."""
    return snapshot_from_dict(json.loads(text))
