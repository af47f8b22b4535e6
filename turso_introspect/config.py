"""
config
======

Settings resolution for the CLI.

Values come from four places, highest precedence first:

1. command-line flags
2. environment variables ``TURSO_INTROSPECT_<FIELD>`` (e.g. ``TURSO_INTROSPECT_ORG``)
3. an optional YAML config file (``--config``)
4. built-in defaults

Example ``turso-introspect.yml``::

    org: my-org
    retries: 5
    retry_delay_ms: 250
    include_system: false
    format: sql

    table_filter:
      include: ["users", "order_%"]
      exclude: ["re:^tmp_"]

CLI include/exclude lists extend the ones from the config file.
"""

from __future__ import annotations

import argparse
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .collectors import IntrospectOptions, TableFilter
from .errors import invalid_args_error, not_found_error
from .retry import DEFAULT_BASE_DELAY, DEFAULT_RETRIES

ENV_PREFIX = "TURSO_INTROSPECT_"
OUTPUT_FORMATS = ("sql", "json")


@dataclass(frozen=True)
class Settings:
    """Resolved settings shared by the ``introspect`` and ``diff`` commands."""

    org: Optional[str] = None
    token: Optional[str] = None
    format: str = "sql"
    retries: int = DEFAULT_RETRIES
    base_delay: float = DEFAULT_BASE_DELAY
    include_system: bool = False
    table_filter: TableFilter = field(default_factory=TableFilter)

    def introspect_options(self) -> IntrospectOptions:
        return IntrospectOptions(table_filter=self.table_filter, include_system=self.include_system)


def load_config(path: Path) -> Dict[str, Any]:
    """Load a YAML config file; an empty file yields ``{}``."""
    if not path.exists():
        raise not_found_error(f"config not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise invalid_args_error(f"config must be a mapping: {path}")
    return data


def deep_get(d: Dict[str, Any], keys: List[str], default: Any = None) -> Any:
    """Safely get nested dict value with default."""
    cur: Any = d
    for k in keys:
        if not isinstance(cur, dict) or k not in cur:
            return default
        cur = cur[k]
    return cur


def get_env_var(name: str) -> Optional[str]:
    """Return ``TURSO_INTROSPECT_<NAME>`` if set and non-empty."""
    value = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
    return value or None


def pick(*values: Any) -> Any:
    """Return the first value that is not None."""
    for v in values:
        if v is not None:
            return v
    return None


def split_list(value: Optional[str]) -> List[str]:
    """Split a comma-separated option value, dropping blanks."""
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def _as_int(value: Any, flag: str, hint: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise invalid_args_error(f'Invalid {flag}: "{value}". {hint}') from None
    if number < 0:
        raise invalid_args_error(f'Invalid {flag}: "{value}". {hint}')
    return number


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def read_table_filter(cfg: Dict[str, Any], args: argparse.Namespace) -> TableFilter:
    include = list(deep_get(cfg, ["table_filter", "include"], []) or [])
    exclude = list(deep_get(cfg, ["table_filter", "exclude"], []) or [])
    include += split_list(getattr(args, "tables", None))
    exclude += split_list(getattr(args, "exclude_tables", None))
    return TableFilter(include=include, exclude=exclude)


def read_settings(cfg: Dict[str, Any], args: argparse.Namespace) -> Settings:
    """Resolve :class:`Settings` from parsed flags, environment and config.

    Raises
    ------
    CliError
        For an unknown output format or negative retry settings (exit code 2).
    """
    fmt = str(pick(getattr(args, "format", None), get_env_var("format"), cfg.get("format"), "sql"))
    if fmt not in OUTPUT_FORMATS:
        raise invalid_args_error(f'Invalid --format: "{fmt}". Use "sql" or "json".')

    retries = _as_int(
        pick(getattr(args, "retries", None), get_env_var("retries"), cfg.get("retries"), DEFAULT_RETRIES),
        "--retries",
        "Use a non-negative integer.",
    )
    delay_ms = _as_int(
        pick(
            getattr(args, "retry_delay", None),
            get_env_var("retry_delay_ms"),
            cfg.get("retry_delay_ms"),
            int(DEFAULT_BASE_DELAY * 1000),
        ),
        "--retry-delay",
        "Use a non-negative integer (milliseconds).",
    )

    include_system = bool(getattr(args, "include_system", False)) or _as_bool(
        pick(get_env_var("include_system"), cfg.get("include_system"), False)
    )

    return Settings(
        org=pick(getattr(args, "org", None), get_env_var("org"), cfg.get("org")),
        token=getattr(args, "token", None),
        format=fmt,
        retries=retries,
        base_delay=delay_ms / 1000.0,
        include_system=include_system,
        table_filter=read_table_filter(cfg, args),
    )
