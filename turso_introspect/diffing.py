"""
diffing
=======

Line-level comparison of two rendered SQL schemas.

This module contains:
- masking of the non-normative header lines before comparison
- grouping the comparison into equal / added / removed runs
- generating unified diffs from the original texts
- extracting a forward migration when the delta is purely additive

The engine treats both inputs as plain lines of text. Neither input has to be
valid SQL, and nothing here parses DDL.

Primary API
-----------
- :func:`diff_schemas`
"""

from __future__ import annotations

import difflib
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from .formatting import HEADER_SOURCE_PREFIX, HEADER_TIMESTAMP_PREFIX

CONTEXT_LINES = 3

_MASKED_PREFIXES = (HEADER_SOURCE_PREFIX, HEADER_TIMESTAMP_PREFIX)
_MASK = "\x00header\x00"
_STATEMENT_START = re.compile(r"^\s*(CREATE|ALTER\s+TABLE)\b", re.IGNORECASE)

MIGRATION_FALLBACK_WARNING = (
    '"migration" format only supports purely additive changes. '
    "Falling back to unified diff."
)


class DiffFormat(str, Enum):
    UNIFIED = "diff"
    MIGRATION = "migration"


class RunKind(str, Enum):
    EQUAL = "equal"
    ADDED = "added"
    REMOVED = "removed"


@dataclass(frozen=True)
class DiffRun:
    """A maximal run of lines sharing one :class:`RunKind`.

    ``start`` indexes into the left text for equal and removed runs, and into
    the right text for added runs.
    """

    kind: RunKind
    start: int
    lines: Tuple[str, ...]


@dataclass
class SchemaDiff:
    """Outcome of :func:`diff_schemas`."""

    label_a: str
    label_b: str
    format: DiffFormat
    runs: List[DiffRun]
    patch: str = ""
    fell_back: bool = False
    warnings: List[str] = field(default_factory=list)

    @property
    def identical(self) -> bool:
        return all(run.kind is RunKind.EQUAL for run in self.runs)

    @property
    def added_count(self) -> int:
        return sum(len(r.lines) for r in self.runs if r.kind is RunKind.ADDED)

    @property
    def removed_count(self) -> int:
        return sum(len(r.lines) for r in self.runs if r.kind is RunKind.REMOVED)


def split_lines(text: str) -> List[str]:
    """Split *text* into lines with normalized newlines and no terminators."""
    return text.replace("\r\n", "\n").replace("\r", "\n").splitlines()


def mask_header(lines: Sequence[str]) -> List[str]:
    """Replace header lines that always differ between sources with a constant.

    Only the leading comment block is considered, so a matching line further
    down the script (inside a view body, say) is still compared.
    """
    masked = list(lines)
    for i, line in enumerate(masked):
        if not line.startswith("--"):
            break
        if line.startswith(_MASKED_PREFIXES):
            masked[i] = _MASK
    return masked


def _matcher(a_lines: Sequence[str], b_lines: Sequence[str]) -> difflib.SequenceMatcher:
    return difflib.SequenceMatcher(None, mask_header(a_lines), mask_header(b_lines), autojunk=False)


def compute_runs(a_lines: Sequence[str], b_lines: Sequence[str]) -> List[DiffRun]:
    """Return the equal / removed / added runs turning *a_lines* into *b_lines*."""
    runs: List[DiffRun] = []
    for tag, i1, i2, j1, j2 in _matcher(a_lines, b_lines).get_opcodes():
        if tag == "equal":
            runs.append(DiffRun(RunKind.EQUAL, i1, tuple(a_lines[i1:i2])))
            continue
        if tag in ("delete", "replace"):
            runs.append(DiffRun(RunKind.REMOVED, i1, tuple(a_lines[i1:i2])))
        if tag in ("insert", "replace"):
            runs.append(DiffRun(RunKind.ADDED, j1, tuple(b_lines[j1:j2])))
    return runs


def _format_range(start: int, stop: int) -> str:
    """Unified diff ``@@`` range (same convention as :mod:`difflib`)."""
    beginning = start + 1
    length = stop - start
    if length == 1:
        return f"{beginning}"
    if not length:
        beginning -= 1
    return f"{beginning},{length}"


def unified_diff(
    a_lines: Sequence[str],
    b_lines: Sequence[str],
    fromfile: str,
    tofile: str,
    n: int = CONTEXT_LINES,
) -> str:
    """Return a unified diff between two line sequences.

    Hunks come from the header-masked comparison; context lines are printed
    from *a_lines*, so the patch shows the original texts.
    """
    out: List[str] = []
    for group in _matcher(a_lines, b_lines).get_grouped_opcodes(n):
        if not out:
            out.append(f"--- {fromfile}\n")
            out.append(f"+++ {tofile}\n")
        first, last = group[0], group[-1]
        out.append(
            f"@@ -{_format_range(first[1], last[2])} +{_format_range(first[3], last[4])} @@\n"
        )
        for tag, i1, i2, j1, j2 in group:
            if tag == "equal":
                out.extend(f" {line}\n" for line in a_lines[i1:i2])
                continue
            if tag in ("replace", "delete"):
                out.extend(f"-{line}\n" for line in a_lines[i1:i2])
            if tag in ("replace", "insert"):
                out.extend(f"+{line}\n" for line in b_lines[j1:j2])
    return "".join(out)


def _is_blank_or_comment(line: str) -> bool:
    stripped = line.strip()
    return not stripped or stripped.startswith("--")


def _complete_statements(run: DiffRun, b_lines: Sequence[str]) -> Optional[List[str]]:
    """Return the run's statement lines if they form whole statements, else ``None``."""
    body = [line for line in run.lines if not _is_blank_or_comment(line)]
    if not body:
        return []
    if not _STATEMENT_START.match(body[0]) or not body[-1].rstrip().endswith(";"):
        return None
    # the run must sit between statements, not inside one
    before = b_lines[run.start - 1] if run.start > 0 else ""
    end = run.start + len(run.lines)
    after = b_lines[end] if end < len(b_lines) else ""
    if not (_is_blank_or_comment(before) or before.rstrip().endswith(";")):
        return None
    if not (_is_blank_or_comment(after) or _STATEMENT_START.match(after)):
        return None
    return body


def migration_script(runs: Sequence[DiffRun], b_lines: Sequence[str], label_a: str, label_b: str) -> Optional[str]:
    """Return forward-migration SQL for an additive delta, or ``None``.

    Supported shape: nothing removed, and every added run consists of complete
    ``CREATE`` / ``ALTER TABLE`` statements. Anything else returns ``None``.
    """
    statements: List[str] = []
    for run in runs:
        if run.kind is RunKind.REMOVED:
            return None
        if run.kind is RunKind.ADDED:
            lines = _complete_statements(run, b_lines)
            if lines is None:
                return None
            statements.extend(lines)
    header = f"-- Migration from {label_a} to {label_b}"
    return "\n".join([header, *statements]) + "\n"


def diff_schemas(
    a_text: str,
    b_text: str,
    label_a: str,
    label_b: str,
    diff_format: DiffFormat = DiffFormat.UNIFIED,
) -> SchemaDiff:
    """Compare two rendered schemas.

    Parameters
    ----------
    a_text, b_text:
        SQL texts, either rendered by :func:`~turso_introspect.formatting.format_sql`
        or read verbatim from a file.
    label_a, label_b:
        Source labels used in the ``---``/``+++`` headers.
    diff_format:
        :attr:`DiffFormat.UNIFIED` or :attr:`DiffFormat.MIGRATION`.

    Returns
    -------
    SchemaDiff
        ``identical`` is true (and ``patch`` empty) when the texts only differ
        in their header source/timestamp lines. In migration format, a delta
        that is not purely additive sets ``fell_back`` and records a warning;
        ``patch`` then holds the unified diff.
    """
    a_lines = split_lines(a_text)
    b_lines = split_lines(b_text)
    result = SchemaDiff(label_a, label_b, diff_format, compute_runs(a_lines, b_lines))
    if result.identical:
        return result

    if diff_format is DiffFormat.MIGRATION:
        script = migration_script(result.runs, b_lines, label_a, label_b)
        if script is not None:
            result.patch = script
            return result
        result.fell_back = True
        result.warnings.append(MIGRATION_FALLBACK_WARNING)

    result.patch = unified_diff(a_lines, b_lines, label_a, label_b)
    return result
