"""
auth
====

Connection targets and Turso authentication.

This module decides *where* to connect and *with which token*:

- :func:`resolve_target` turns the ``DATABASE`` argument into a
  :class:`DbTarget` (local SQLite file, or remote libSQL URL).
- :func:`get_auth_token` picks a token, in order of precedence:

  1. the ``--token`` flag
  2. the ``TURSO_AUTH_TOKEN`` environment variable
  3. the platform token stored by the Turso CLI in its settings file

  Platform tokens (JWTs signed with ``RS256``) cannot open a database
  directly; when an organization is known they are exchanged for a database
  token through the Turso platform API.

Opening the connection itself lives in :mod:`turso_introspect.connection`.
"""

from __future__ import annotations

import base64
import json
import os
import platform
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import httpx

from .errors import connection_error, invalid_args_error

REMOTE_SCHEMES = ("libsql://", "http://", "https://")
TOKEN_ENV_VAR = "TURSO_AUTH_TOKEN"
PLATFORM_API = "https://api.turso.tech/v1"
DEFAULT_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True)
class DbTarget:
    """Where a schema is read from.

    Parameters
    ----------
    database:
        The name the user gave (used for labels and the default output name).
    url:
        Remote URL (``libsql://``/``https://``) or local file path.
    local:
        True for a SQLite file opened with :mod:`sqlite3`.
    token:
        Database auth token for remote targets.
    """

    database: str
    url: str
    local: bool = False
    token: Optional[str] = None

    def describe(self) -> str:
        kind = "local" if self.local else "remote"
        return f"{self.database} ({kind}: {self.url})"


def is_local_database(database: str) -> bool:
    """Return True if *database* names a local SQLite file."""
    if database.startswith("file:"):
        return True
    if database.startswith(REMOTE_SCHEMES):
        return False
    return Path(database).is_file() or database.endswith((".db", ".sqlite", ".sqlite3"))


def resolve_database_url(database: str, org: Optional[str] = None) -> str:
    """Return the remote URL for *database*.

    URLs pass through unchanged; a bare database name becomes
    ``libsql://{database}-{org}.turso.io``.
    """
    if database.startswith(REMOTE_SCHEMES):
        return database
    if not org:
        raise invalid_args_error(
            "Organization name is required when using a database name (use --org)"
        )
    return f"libsql://{database}-{org}.turso.io"


def settings_path() -> Path:
    """Location of the Turso CLI settings file for this platform."""
    if platform.system() == "Darwin":
        return Path.home() / "Library" / "Application Support" / "turso" / "settings.json"
    return Path.home() / ".config" / "turso" / "settings.json"


def read_platform_token(path: Optional[Path] = None) -> Optional[str]:
    """Return the token stored by the Turso CLI, or None if unavailable."""
    path = path or settings_path()
    try:
        settings = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    token = settings.get("token") if isinstance(settings, dict) else None
    return str(token) if token else None


def is_platform_token(token: str) -> bool:
    """Return True if *token* is a JWT whose header declares ``alg: RS256``."""
    header = token.split(".")[0]
    if not header:
        return False
    try:
        padded = header + "=" * (-len(header) % 4)
        decoded = json.loads(base64.urlsafe_b64decode(padded))
    except (ValueError, TypeError):
        return False
    return isinstance(decoded, dict) and decoded.get("alg") == "RS256"


def create_database_token(
    platform_token: str,
    org: str,
    database: str,
    client: Optional[httpx.Client] = None,
) -> str:
    """Exchange a platform token for a database token.

    Raises
    ------
    CliError
        If the platform API rejects the request (exit code 1).
    """
    url = f"{PLATFORM_API}/organizations/{org}/databases/{database}/auth/tokens"
    http = client or httpx.Client(timeout=DEFAULT_TIMEOUT_SECONDS)
    try:
        response = http.post(url, headers={"Authorization": f"Bearer {platform_token}"})
    except httpx.HTTPError as exc:
        raise connection_error(f"Failed to create database token: {exc}") from exc
    finally:
        if client is None:
            http.close()
    if response.status_code >= 400:
        raise connection_error(
            f"Failed to create database token: {response.status_code} {response.text}"
        )
    return str(response.json()["jwt"])


def get_auth_token(
    database: str,
    org: Optional[str],
    token_flag: Optional[str] = None,
    client: Optional[httpx.Client] = None,
) -> Optional[str]:
    """Return the database token to use, or None for unauthenticated access."""
    for candidate in (token_flag, os.environ.get(TOKEN_ENV_VAR)):
        if candidate:
            if org and is_platform_token(candidate):
                return create_database_token(candidate, org, database, client)
            return candidate

    platform_token = read_platform_token()
    if platform_token and org:
        return create_database_token(platform_token, org, database, client)
    return None


def resolve_target(
    database: str,
    org: Optional[str] = None,
    token: Optional[str] = None,
    client: Optional[httpx.Client] = None,
) -> DbTarget:
    """Build the :class:`DbTarget` for a ``DATABASE`` argument."""
    if is_local_database(database):
        return DbTarget(database=database, url=database, local=True)
    url = resolve_database_url(database, org)
    return DbTarget(
        database=database,
        url=url,
        token=get_auth_token(database, org, token, client),
    )
