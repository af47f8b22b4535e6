"""Unit tests for collectors module."""

import sqlite3
from pathlib import Path
from typing import Any, Dict, List

import pytest

from turso_introspect.collectors import (
    IntrospectOptions,
    TableFilter,
    check_connection,
    filter_tables,
    introspect_schema,
    matches_pattern,
    q_table_info,
    sql_like_to_fnmatch,
)
from turso_introspect.connection import LocalClient
from turso_introspect.errors import ConnectionFailed
from turso_introspect.formatting import format_sql
from turso_introspect.retry import RetryError
from turso_introspect.schema import IndexOrigin

SCHEMA = """
CREATE TABLE users (id INTEGER PRIMARY KEY, email TEXT UNIQUE NOT NULL);
CREATE TABLE teams (id INTEGER PRIMARY KEY, name TEXT DEFAULT 'unnamed');
CREATE TABLE memberships (
  user_id INTEGER REFERENCES users(id) ON DELETE CASCADE,
  team_id INTEGER,
  PRIMARY KEY (user_id, team_id),
  FOREIGN KEY (team_id) REFERENCES teams(id)
);
CREATE INDEX idx_memberships_team ON memberships (team_id);
CREATE VIEW v_members AS SELECT u.email FROM users u JOIN memberships m ON m.user_id = u.id;
CREATE TRIGGER trg_users AFTER DELETE ON users BEGIN DELETE FROM memberships WHERE user_id = old.id; END;
CREATE TABLE _litestream_seq (id INTEGER PRIMARY KEY, seq INTEGER);
CREATE TABLE "order" (id INTEGER PRIMARY KEY AUTOINCREMENT);
"""


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    path = tmp_path / "app.db"
    conn = sqlite3.connect(path)
    conn.executescript(SCHEMA)
    conn.commit()
    conn.close()
    return path


class FlakyClient:
    """Wraps a client and fails the first *failures* calls."""

    def __init__(self, inner: Any, failures: int) -> None:
        self.inner = inner
        self.failures = failures
        self.calls = 0

    def execute(self, sql: str) -> List[Dict[str, Any]]:
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionFailed("transient")
        return self.inner.execute(sql)


class TestSqlLikeToFnmatch:
    """Tests for sql_like_to_fnmatch function."""

    def test_percent_to_asterisk(self) -> None:
        assert sql_like_to_fnmatch("FACT%") == "FACT*"
        assert sql_like_to_fnmatch("%TABLE") == "*TABLE"

    def test_underscore_to_question(self) -> None:
        assert sql_like_to_fnmatch("TABLE_A") == "TABLE?A"


class TestMatchesPattern:
    """Tests for matches_pattern function."""

    def test_exact_name(self) -> None:
        assert matches_pattern("users", "users")
        assert not matches_pattern("users", "user")

    def test_like_pattern(self) -> None:
        assert matches_pattern("order_items", "order_%")
        assert not matches_pattern("users", "order_%")

    def test_regex_pattern(self) -> None:
        assert matches_pattern("tmp_2024", "re:^tmp_\\d{4}$")
        assert not matches_pattern("users", "re:^tmp_")

    def test_case_sensitive(self) -> None:
        assert not matches_pattern("Users", "users")

    def test_underscore_in_plain_name_is_literal(self) -> None:
        """Without a % the entry is a table name, not a pattern."""
        assert matches_pattern("tmp_1", "tmp_1")
        assert not matches_pattern("tmpX1", "tmp_1")

    def test_underscore_in_like_pattern_is_wildcard(self) -> None:
        assert matches_pattern("tmpX1", "tmp_%")


class TestFilterTables:
    """Tests for filter_tables function."""

    def test_include_only(self) -> None:
        assert filter_tables(["a", "b", "c"], include=["a", "c"], exclude=[]) == ["a", "c"]

    def test_exclude_only(self) -> None:
        assert filter_tables(["a", "tmp_b", "c"], include=[], exclude=["tmp_%"]) == ["a", "c"]

    def test_exclude_exact_name_with_underscore(self) -> None:
        assert filter_tables(["tmp_1", "tmpX1"], include=[], exclude=["tmp_1"]) == ["tmpX1"]

    def test_include_and_exclude(self) -> None:
        tables = ["fact_a", "fact_tmp", "dim_b", "tmp_c"]
        assert filter_tables(tables, include=["fact_%", "dim_%"], exclude=["%tmp%"]) == ["fact_a", "dim_b"]

    def test_order_preserved(self) -> None:
        assert filter_tables(["z", "a", "m"], include=[], exclude=[]) == ["z", "a", "m"]


class TestIntrospectSchema:
    """Tests for introspect_schema against a real SQLite file."""

    def test_collects_tables_sorted_without_system(self, db_path: Path) -> None:
        with LocalClient(str(db_path)) as client:
            snap = introspect_schema(client, "app.db")
        assert snap.table_names() == ["memberships", "order", "teams", "users"]
        assert [v.name for v in snap.views] == ["v_members"]
        assert [t.name for t in snap.triggers] == ["trg_users"]
        assert snap.metadata.database == "app.db"
        assert snap.metadata.version == "1.0.0"

    def test_include_system(self, db_path: Path) -> None:
        with LocalClient(str(db_path)) as client:
            snap = introspect_schema(client, "app.db", IntrospectOptions(include_system=True))
        names = snap.table_names()
        assert "_litestream_seq" in names
        assert "sqlite_sequence" in names

    def test_table_filter(self, db_path: Path) -> None:
        options = IntrospectOptions(table_filter=TableFilter(include=["users", "teams"], exclude=["teams"]))
        with LocalClient(str(db_path)) as client:
            snap = introspect_schema(client, "app.db", options)
        assert snap.table_names() == ["users"]

    def test_columns_coerced(self, db_path: Path) -> None:
        with LocalClient(str(db_path)) as client:
            snap = introspect_schema(client, "app.db")
        users = snap.tables[snap.position("users")]
        assert [(c.name, c.type, c.notnull, c.pk) for c in users.columns] == [
            ("id", "INTEGER", False, 1),
            ("email", "TEXT", True, 0),
        ]
        teams = snap.tables[snap.position("teams")]
        assert teams.columns[1].default == "'unnamed'"

    def test_foreign_keys_and_indexes(self, db_path: Path) -> None:
        with LocalClient(str(db_path)) as client:
            snap = introspect_schema(client, "app.db")
        memberships = snap.tables[snap.position("memberships")]
        assert {fk.table for fk in memberships.foreign_keys} == {"users", "teams"}
        origins = {i.name: i.origin for i in memberships.indexes}
        assert origins["idx_memberships_team"] is IndexOrigin.EXPLICIT
        assert IndexOrigin.PRIMARY_KEY in origins.values()
        explicit = memberships.explicit_indexes()[0]
        assert explicit.columns == ("team_id",)
        assert explicit.sql == "CREATE INDEX idx_memberships_team ON memberships (team_id)"

    def test_rendered_script_executes(self, db_path: Path, tmp_path: Path) -> None:
        """The rendered script rebuilds the same tables in an empty database."""
        with LocalClient(str(db_path)) as client:
            snap = introspect_schema(client, "app.db")
        script = format_sql(snap)
        without_alters = "\n".join(l for l in script.splitlines() if not l.startswith("ALTER TABLE"))
        conn = sqlite3.connect(tmp_path / "copy.db")
        conn.executescript(without_alters)
        tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
        conn.close()
        assert {"users", "teams", "memberships", "order"} <= tables

    def test_catalog_calls_are_retried(self, db_path: Path) -> None:
        with LocalClient(str(db_path)) as inner:
            client = FlakyClient(inner, failures=2)
            snap = introspect_schema(client, "app.db", retries=3, base_delay=0)
        assert "users" in snap.table_names()

    def test_concurrent_fetch_matches_sequential(self, db_path: Path) -> None:
        """Fetching tables on worker threads yields the same tables as one by one."""
        with LocalClient(str(db_path)) as client:
            sequential = introspect_schema(client, "app.db", max_workers=1)
            concurrent = introspect_schema(client, "app.db", max_workers=8)
        assert concurrent.tables == sequential.tables
        assert concurrent.views == sequential.views

    def test_table_failure_propagates_from_worker(self, db_path: Path) -> None:
        class BrokenPragma:
            def __init__(self, inner: Any) -> None:
                self.inner = inner

            def execute(self, sql: str) -> List[Dict[str, Any]]:
                if sql.startswith("PRAGMA table_info(teams)"):
                    raise ConnectionFailed("teams unavailable")
                return self.inner.execute(sql)

        with LocalClient(str(db_path)) as inner:
            with pytest.raises(RetryError, match="teams unavailable"):
                introspect_schema(BrokenPragma(inner), "app.db", retries=0)

    def test_exhausted_retries_propagate(self, db_path: Path) -> None:
        with LocalClient(str(db_path)) as inner:
            client = FlakyClient(inner, failures=10)
            with pytest.raises(RetryError, match="2 attempts"):
                introspect_schema(client, "app.db", retries=1, base_delay=0)


class TestCheckConnection:
    """Tests for check_connection function."""

    def test_ok(self, db_path: Path) -> None:
        with LocalClient(str(db_path)) as client:
            check_connection(client)

    def test_failure_raises(self) -> None:
        class Broken:
            def execute(self, sql: str) -> List[Dict[str, Any]]:
                raise ConnectionFailed("down")

        with pytest.raises(RetryError):
            check_connection(Broken())


def test_pragma_queries_quote_identifiers() -> None:
    assert q_table_info("order") == 'PRAGMA table_info("order")'
    assert q_table_info("users") == "PRAGMA table_info(users)"
