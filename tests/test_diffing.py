from conftest import make_snapshot, make_table
from turso_introspect.diffing import (
    MIGRATION_FALLBACK_WARNING,
    DiffFormat,
    RunKind,
    compute_runs,
    diff_schemas,
    mask_header,
    unified_diff,
)
from turso_introspect.formatting import format_sql
from turso_introspect.schema import Snapshot, Table


def _users(body: str, timestamp: str = "2026-01-01T00:00:00.000+00:00", database: str = "a.db") -> str:
    return format_sql(make_snapshot(Table(name="users", sql=f"CREATE TABLE users{body}"), timestamp=timestamp, database=database))


def test_same_snapshot_rendered_twice_is_identical(shop_snapshot: Snapshot) -> None:
    result = diff_schemas(format_sql(shop_snapshot), format_sql(shop_snapshot), "a", "b")
    assert result.identical
    assert result.patch == ""


def test_timestamp_and_source_lines_ignored() -> None:
    a = _users("(id INTEGER PRIMARY KEY)", timestamp="2026-01-01T00:00:00Z", database="prod")
    b = _users("(id INTEGER PRIMARY KEY)", timestamp="2026-06-30T12:34:56Z", database="staging")
    assert diff_schemas(a, b, "prod", "staging").identical


def test_empty_texts_are_identical() -> None:
    assert diff_schemas("", "", "a", "b").identical


def test_added_column_reported() -> None:
    a = _users("(id INTEGER PRIMARY KEY)")
    b = _users("(id INTEGER PRIMARY KEY, email TEXT)")
    result = diff_schemas(a, b, "left", "right")
    assert not result.identical
    assert result.removed_count == 1
    assert result.added_count == 1
    assert "-CREATE TABLE users(id INTEGER PRIMARY KEY);\n" in result.patch
    assert "+CREATE TABLE users(id INTEGER PRIMARY KEY, email TEXT);\n" in result.patch


def test_verbatim_line_delta_counts_one_added_line() -> None:
    a = _users("(\n  id INTEGER PRIMARY KEY\n  , name TEXT\n)")
    b = _users("(\n  id INTEGER PRIMARY KEY\n  , name TEXT\n  , email TEXT\n)")
    result = diff_schemas(a, b, "left", "right")
    assert result.added_count == 1
    assert result.removed_count == 0
    assert "+  , email TEXT\n" in result.patch


def test_unified_patch_headers_carry_labels() -> None:
    result = diff_schemas(_users("(a)"), _users("(b)"), "prod.sql", "libsql://staging")
    assert result.patch.startswith("--- prod.sql\n+++ libsql://staging\n@@ ")


def test_patch_shows_original_header_lines() -> None:
    """Masked lines stay visible as context in the patch."""
    a = "-- Schema: x\n-- Generated: T1\nCREATE TABLE a (id);\n"
    b = "-- Schema: y\n-- Generated: T2\nCREATE TABLE b (id);\n"
    result = diff_schemas(a, b, "a", "b")
    assert " -- Schema: x\n -- Generated: T1\n" in result.patch
    assert "-- Generated: T2" not in result.patch


def test_mask_header_only_touches_leading_comments() -> None:
    lines = ["-- Schema: x", "-- Generated: now", "", "-- Generated: inside body"]
    masked = mask_header(lines)
    assert masked[0] != lines[0] and masked[1] != lines[1]
    assert masked[3] == lines[3]


def test_compute_runs_kinds() -> None:
    runs = compute_runs(["a", "b", "c"], ["a", "x", "c", "d"])
    assert [r.kind for r in runs] == [
        RunKind.EQUAL,
        RunKind.REMOVED,
        RunKind.ADDED,
        RunKind.EQUAL,
        RunKind.ADDED,
    ]


def test_unified_diff_matches_difflib_shape() -> None:
    diff = unified_diff(["a"], ["b"], "left", "right")
    assert diff == "--- left\n+++ right\n@@ -1 +1 @@\n-a\n+b\n"


def test_non_sql_input_is_fine() -> None:
    result = diff_schemas("not sql at all\n", "still not sql\n", "a", "b")
    assert result.removed_count == 1 and result.added_count == 1


def test_migration_for_added_table() -> None:
    a = format_sql(make_snapshot(make_table("users")))
    b = format_sql(make_snapshot(make_table("users"), make_table("teams")))
    result = diff_schemas(a, b, "a", "b", DiffFormat.MIGRATION)
    assert not result.fell_back
    assert result.warnings == []
    assert result.patch == "-- Migration from a to b\nCREATE TABLE teams (id INTEGER PRIMARY KEY);\n"


def test_migration_for_added_foreign_key_table() -> None:
    a = format_sql(make_snapshot(make_table("users")))
    b = format_sql(make_snapshot(make_table("users"), make_table("posts", refs=["users"])))
    result = diff_schemas(a, b, "a", "b", DiffFormat.MIGRATION)
    assert not result.fell_back
    assert "CREATE TABLE posts (id INTEGER PRIMARY KEY);" in result.patch
    assert "ALTER TABLE posts ADD FOREIGN KEY (users_id) REFERENCES users (id);" in result.patch


def test_migration_falls_back_with_warning_for_changes() -> None:
    result = diff_schemas(_users("(a)"), _users("(a, b)"), "a", "b", DiffFormat.MIGRATION)
    assert result.fell_back
    assert result.warnings == [MIGRATION_FALLBACK_WARNING]
    assert result.patch.startswith("--- a\n+++ b\n")


def test_migration_falls_back_for_statement_fragment() -> None:
    """Lines inserted inside a statement are not a migration."""
    trigger = "CREATE TABLE t (x);\nCREATE TRIGGER g AFTER INSERT ON t BEGIN\n  SELECT 1;\nEND;\n"
    changed = "CREATE TABLE t (x);\nCREATE TRIGGER g AFTER INSERT ON t BEGIN\n  SELECT 1;\n  SELECT 2;\nEND;\n"
    result = diff_schemas(trigger, changed, "a", "b", DiffFormat.MIGRATION)
    assert result.fell_back


def test_migration_identical_has_no_warning() -> None:
    text = _users("(a)")
    result = diff_schemas(text, text, "a", "b", DiffFormat.MIGRATION)
    assert result.identical and not result.fell_back and result.patch == ""
