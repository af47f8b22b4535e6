"""
errors
======

Exception types shared across the package.

CLI-facing errors carry a process exit code:

- ``1``: connection failure (also the default for unexpected errors)
- ``2``: invalid arguments / configuration
- ``3``: something that was asked for does not exist
"""

from __future__ import annotations

EXIT_CONNECTION = 1
EXIT_INVALID_ARGS = 2
EXIT_NOT_FOUND = 3


class SchemaError(ValueError):
    """Raised when a snapshot violates its structural invariants."""


class ConnectionFailed(Exception):
    """Raised by database clients when a catalog query cannot be executed."""


class CliError(Exception):
    """An error that should be reported to the user and end the process.

    Parameters
    ----------
    message:
        Human-readable message (printed after ``Error:``).
    code:
        Process exit code.
    """

    def __init__(self, message: str, code: int = EXIT_CONNECTION) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


def connection_error(message: str) -> CliError:
    return CliError(message, EXIT_CONNECTION)


def invalid_args_error(message: str) -> CliError:
    return CliError(message, EXIT_INVALID_ARGS)


def not_found_error(message: str) -> CliError:
    return CliError(message, EXIT_NOT_FOUND)
