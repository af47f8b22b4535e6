"""
connection
==========

Database clients used by the collector.

The rest of the codebase treats database access as a pure function:

- input: a client + SQL
- output: a list of rows (``dict`` of column name to value)

Two clients implement that contract:

- :class:`LocalClient` reads a SQLite file through :mod:`sqlite3` (read-only).
- :class:`RemoteClient` talks to a libSQL server over its HTTP pipeline API
  using :mod:`httpx`.

Both raise :class:`~turso_introspect.errors.ConnectionFailed` when a query
cannot be executed, which the collector's retry wrapper acts on.
"""

from __future__ import annotations

import base64
import sqlite3
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from .auth import DbTarget
from .errors import ConnectionFailed, not_found_error

Row = Dict[str, Any]

DEFAULT_TIMEOUT_SECONDS = 30.0


class LocalClient:
    """Read-only client for a local SQLite database file.

    The connection is shared by the collector's worker threads; queries are
    serialized with a lock.
    """

    def __init__(self, path: str) -> None:
        if path.startswith("file:"):
            uri = path
        else:
            file_path = Path(path)
            if not file_path.is_file():
                raise not_found_error(f"Database file not found: {path}")
            uri = file_path.resolve().as_uri() + "?mode=ro"
        try:
            self._conn = sqlite3.connect(uri, uri=True, check_same_thread=False)
        except sqlite3.Error as exc:
            raise ConnectionFailed(f"Cannot open {path}: {exc}") from exc
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()

    def execute(self, sql: str) -> List[Row]:
        try:
            with self._lock:
                cursor = self._conn.execute(sql)
                return [dict(row) for row in cursor.fetchall()]
        except sqlite3.Error as exc:
            raise ConnectionFailed(f"Query failed: {exc}") from exc

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "LocalClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def http_base_url(url: str) -> str:
    """Map a ``libsql://`` URL to the HTTPS endpoint serving it."""
    if url.startswith("libsql://"):
        url = "https://" + url[len("libsql://"):]
    return url.rstrip("/")


def decode_value(cell: Dict[str, Any]) -> Any:
    """Decode one typed cell of a pipeline result (``{"type": ..., "value": ...}``)."""
    kind = cell.get("type")
    if kind == "null":
        return None
    if kind == "integer":
        return int(cell["value"])
    if kind == "float":
        return float(cell["value"])
    if kind == "blob":
        return base64.b64decode(cell.get("base64", ""))
    return cell.get("value")


class RemoteClient:
    """Client for a libSQL / Turso database over the HTTP pipeline API (v2).

    Each :meth:`execute` sends one self-contained pipeline (execute + close), so
    a call can be repeated safely after a failure.
    """

    def __init__(
        self,
        url: str,
        token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        http: Optional[httpx.Client] = None,
    ) -> None:
        self.url = http_base_url(url)
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._owns_http = http is None
        self._http = http or httpx.Client(timeout=timeout)
        self._headers = headers

    def execute(self, sql: str) -> List[Row]:
        payload = {
            "requests": [
                {"type": "execute", "stmt": {"sql": sql}},
                {"type": "close"},
            ]
        }
        try:
            response = self._http.post(f"{self.url}/v2/pipeline", json=payload, headers=self._headers)
        except httpx.HTTPError as exc:
            raise ConnectionFailed(f"Request to {self.url} failed: {exc}") from exc
        if response.status_code >= 400:
            raise ConnectionFailed(f"HTTP {response.status_code} from {self.url}: {response.text.strip()}")

        first = response.json()["results"][0]
        if first.get("type") == "error":
            message = (first.get("error") or {}).get("message", "unknown error")
            raise ConnectionFailed(f"Query failed: {message}")

        result = first["response"]["result"]
        names = [col.get("name") or "" for col in result.get("cols", [])]
        return [
            {name: decode_value(cell) for name, cell in zip(names, row)}
            for row in result.get("rows", [])
        ]

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def __enter__(self) -> "RemoteClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def create_client(target: DbTarget, http: Optional[httpx.Client] = None):
    """Open a client for *target*."""
    if target.local:
        return LocalClient(target.url)
    return RemoteClient(target.url, token=target.token, http=http)
