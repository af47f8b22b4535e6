"""
schema
======

The in-memory schema snapshot.

A :class:`Snapshot` is built once by the collector (:mod:`turso_introspect.collectors`)
or loaded from a structured document, and is then consumed read-only by the
ordering, formatting and diffing modules. All types here are frozen
dataclasses holding tuples, so a snapshot cannot be mutated in place.

Catalog rows arrive loosely typed (``PRAGMA`` results, JSON values, HTTP
pipeline cells). Each type exposes a ``from_row`` classmethod that coerces
such a mapping into the fixed shape; nothing downstream handles raw rows.
"""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .errors import SchemaError

SCHEMA_FORMAT_VERSION = "1.0.0"

_VIRTUAL_TABLE = re.compile(r"^\s*CREATE\s+VIRTUAL\s+TABLE\b", re.IGNORECASE)


def _opt_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes"}
    return bool(value)


class IndexOrigin(str, Enum):
    """How an index came to exist (``PRAGMA index_list`` ``origin`` column)."""

    EXPLICIT = "c"
    UNIQUE_CONSTRAINT = "u"
    PRIMARY_KEY = "pk"

    @classmethod
    def parse(cls, value: Any) -> "IndexOrigin":
        text = str(value).strip().lower()
        for member in cls:
            if text in (member.value, member.name.lower()):
                return member
        raise SchemaError(f"unknown index origin: {value!r}")


@dataclass(frozen=True)
class Column:
    """One column of a table, as reported by ``PRAGMA table_info``.

    ``pk`` is the 1-based position of the column in the primary key, or 0 when
    the column is not part of it.
    """

    cid: int
    name: str
    type: str
    notnull: bool = False
    default: Optional[str] = None
    pk: int = 0

    @property
    def is_primary_key_part(self) -> bool:
        return self.pk > 0

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Column":
        return cls(
            cid=int(row["cid"]),
            name=str(row["name"]),
            type=str(row.get("type") or ""),
            notnull=_as_bool(row.get("notnull", 0)),
            default=_opt_str(row.get("dflt_value")),
            pk=int(row.get("pk") or 0),
        )


@dataclass(frozen=True)
class ForeignKey:
    """One row of ``PRAGMA foreign_key_list``.

    Rows sharing a ``group_id`` form a single (possibly composite) constraint.
    ``to_column`` is ``None`` when the constraint implicitly references the
    parent table's primary key.
    """

    group_id: int
    seq: int
    table: str
    from_column: str
    to_column: Optional[str] = None
    on_update: str = "NO ACTION"
    on_delete: str = "NO ACTION"
    match: str = "NONE"

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ForeignKey":
        return cls(
            group_id=int(row["id"]),
            seq=int(row["seq"]),
            table=str(row["table"]),
            from_column=str(row["from"]),
            to_column=_opt_str(row.get("to")),
            on_update=str(row.get("on_update") or "NO ACTION"),
            on_delete=str(row.get("on_delete") or "NO ACTION"),
            match=str(row.get("match") or "NONE"),
        )


@dataclass(frozen=True)
class Index:
    """An index attached to a table.

    Only :attr:`IndexOrigin.EXPLICIT` indexes were created by a ``CREATE
    INDEX`` statement; the others are implied by the table definition.
    """

    name: str
    unique: bool
    origin: IndexOrigin
    partial: bool = False
    columns: Tuple[str, ...] = ()
    sql: Optional[str] = None

    @property
    def is_explicit(self) -> bool:
        return self.origin is IndexOrigin.EXPLICIT

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Index":
        return cls(
            name=str(row["name"]),
            unique=_as_bool(row.get("unique", False)),
            origin=IndexOrigin.parse(row.get("origin", "c")),
            partial=_as_bool(row.get("partial", False)),
            # Expression index columns have no name.
            columns=tuple("" if c is None else str(c) for c in row.get("columns") or ()),
            sql=_opt_str(row.get("sql")),
        )


@dataclass(frozen=True)
class Table:
    name: str
    sql: str
    columns: Tuple[Column, ...] = ()
    foreign_keys: Tuple[ForeignKey, ...] = ()
    indexes: Tuple[Index, ...] = ()

    @property
    def is_virtual(self) -> bool:
        return _VIRTUAL_TABLE.match(self.sql) is not None

    def foreign_key_groups(self) -> List[Tuple[ForeignKey, ...]]:
        """Return foreign key rows regrouped by ``group_id``.

        Groups are ordered by ``group_id``; rows within a group by ``seq``.
        """
        groups: Dict[int, List[ForeignKey]] = {}
        for fk in self.foreign_keys:
            groups.setdefault(fk.group_id, []).append(fk)
        return [
            tuple(sorted(rows, key=lambda fk: fk.seq))
            for _, rows in sorted(groups.items())
        ]

    def explicit_indexes(self) -> List[Index]:
        return [idx for idx in self.indexes if idx.is_explicit]

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Table":
        return cls(
            name=str(row["name"]),
            sql=str(row.get("sql") or ""),
            columns=tuple(Column.from_row(c) for c in row.get("columns") or ()),
            foreign_keys=tuple(
                ForeignKey.from_row(fk) for fk in row.get("foreign_keys") or ()
            ),
            indexes=tuple(Index.from_row(i) for i in row.get("indexes") or ()),
        )


@dataclass(frozen=True)
class View:
    name: str
    sql: str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "View":
        return cls(name=str(row["name"]), sql=str(row.get("sql") or ""))


@dataclass(frozen=True)
class Trigger:
    name: str
    sql: str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Trigger":
        return cls(name=str(row["name"]), sql=str(row.get("sql") or ""))


@dataclass(frozen=True)
class SnapshotMetadata:
    """Where and when a snapshot was taken."""

    database: str
    timestamp: str
    version: str = SCHEMA_FORMAT_VERSION

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "SnapshotMetadata":
        return cls(
            database=str(row.get("database", "")),
            timestamp=str(row.get("timestamp", "")),
            version=str(row.get("version") or SCHEMA_FORMAT_VERSION),
        )


@dataclass(frozen=True)
class Snapshot:
    """The full structural schema of one source.

    Raises
    ------
    SchemaError
        If two tables share a name.
    """

    metadata: SnapshotMetadata
    tables: Tuple[Table, ...] = ()
    views: Tuple[View, ...] = ()
    triggers: Tuple[Trigger, ...] = ()
    _positions: Dict[str, int] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        validate_table_names(self.tables)
        object.__setattr__(
            self, "_positions", {t.name: i for i, t in enumerate(self.tables)}
        )

    def table_names(self) -> List[str]:
        return [t.name for t in self.tables]

    def has_table(self, name: str) -> bool:
        return name in self._positions

    def position(self, name: str) -> int:
        """Declaration index of table *name*."""
        return self._positions[name]

    def is_empty(self) -> bool:
        return not (self.tables or self.views or self.triggers)


def validate_table_names(tables: Tuple[Table, ...]) -> None:
    """Raise :class:`SchemaError` if any table name occurs more than once."""
    counts = Counter(t.name for t in tables)
    duplicates = sorted(name for name, n in counts.items() if n > 1)
    if duplicates:
        raise SchemaError(f"duplicate table names in snapshot: {', '.join(duplicates)}")
