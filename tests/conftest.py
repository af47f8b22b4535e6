"""Shared fixtures: small snapshots built by hand."""

from __future__ import annotations

from typing import Sequence

import pytest

from turso_introspect.schema import (
    Column,
    ForeignKey,
    Index,
    IndexOrigin,
    Snapshot,
    SnapshotMetadata,
    Table,
    Trigger,
    View,
)


def make_table(name: str, sql: str | None = None, refs: Sequence[str] = (), indexes: Sequence[Index] = ()) -> Table:
    """Build a table whose foreign keys reference *refs* (one group each)."""
    fks = tuple(
        ForeignKey(group_id=i, seq=0, table=ref, from_column=f"{ref}_id", to_column="id")
        for i, ref in enumerate(refs)
    )
    return Table(
        name=name,
        sql=sql or f"CREATE TABLE {name} (id INTEGER PRIMARY KEY)",
        columns=(Column(cid=0, name="id", type="INTEGER", pk=1),),
        foreign_keys=fks,
        indexes=tuple(indexes),
    )


def make_snapshot(*tables: Table, views: Sequence[View] = (), triggers: Sequence[Trigger] = (), timestamp: str = "2026-01-01T00:00:00.000+00:00", database: str = "test.db") -> Snapshot:
    return Snapshot(
        metadata=SnapshotMetadata(database=database, timestamp=timestamp),
        tables=tuple(tables),
        views=tuple(views),
        triggers=tuple(triggers),
    )


@pytest.fixture
def shop_snapshot() -> Snapshot:
    """users <- orders <- order_items -> products, declared children first."""
    order_items = Table(
        name="order_items",
        sql=(
            "CREATE TABLE order_items (\n"
            "  order_id INTEGER NOT NULL,\n"
            "  product_id INTEGER NOT NULL,\n"
            "  qty INTEGER DEFAULT 1,\n"
            "  PRIMARY KEY (order_id, product_id)\n"
            ")"
        ),
        columns=(
            Column(0, "order_id", "INTEGER", True, None, 1),
            Column(1, "product_id", "INTEGER", True, None, 2),
            Column(2, "qty", "INTEGER", False, "1", 0),
        ),
        foreign_keys=(
            ForeignKey(1, 0, "products", "product_id", "id", on_delete="CASCADE"),
            ForeignKey(0, 0, "orders", "order_id", "id"),
        ),
        indexes=(
            Index("sqlite_autoindex_order_items_1", True, IndexOrigin.PRIMARY_KEY, columns=("order_id", "product_id")),
        ),
    )
    orders = Table(
        name="orders",
        sql="CREATE TABLE orders (id INTEGER PRIMARY KEY, user_id INTEGER, placed_at TEXT)",
        columns=(
            Column(0, "id", "INTEGER", pk=1),
            Column(1, "user_id", "INTEGER"),
            Column(2, "placed_at", "TEXT"),
        ),
        foreign_keys=(ForeignKey(0, 0, "users", "user_id", "id", on_update="CASCADE"),),
        indexes=(
            Index(
                "idx_orders_user",
                False,
                IndexOrigin.EXPLICIT,
                columns=("user_id",),
                sql="CREATE INDEX idx_orders_user ON orders (user_id)",
            ),
        ),
    )
    products = make_table("products")
    users = Table(
        name="users",
        sql="CREATE TABLE users (id INTEGER PRIMARY KEY, email TEXT UNIQUE)",
        columns=(Column(0, "id", "INTEGER", pk=1), Column(1, "email", "TEXT")),
        indexes=(Index("sqlite_autoindex_users_1", True, IndexOrigin.UNIQUE_CONSTRAINT, columns=("email",)),),
    )
    return make_snapshot(
        order_items,
        orders,
        products,
        users,
        views=(View("v_orders", "CREATE VIEW v_orders AS SELECT * FROM orders"),),
        triggers=(
            Trigger(
                "trg_orders",
                "CREATE TRIGGER trg_orders AFTER INSERT ON orders BEGIN SELECT 1; END",
            ),
        ),
    )
