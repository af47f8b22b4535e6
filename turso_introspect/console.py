"""
console
=======

Human-facing output for the CLI.

Progress and diagnostics go to a :class:`rich.console.Console` bound to
*stderr*, so SQL / JSON / patches written to *stdout* are never mixed with
decoration.
"""

from __future__ import annotations

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

PACKAGE_LOGGER = "turso_introspect"


class Logger:
    """Colored progress messages honouring ``--quiet`` and ``--verbose``.

    Errors are always printed, even when quiet.
    """

    def __init__(self, quiet: bool = False, verbose: bool = False, console: Optional[Console] = None) -> None:
        self.quiet = quiet
        self.verbose_enabled = verbose and not quiet
        self.console = console or Console(stderr=True)

    def info(self, message: str) -> None:
        if not self.quiet:
            self.console.print(f"[blue]{escape(message)}[/blue]")

    def success(self, message: str) -> None:
        if not self.quiet:
            self.console.print(f"[green]{escape(message)}[/green]")

    def warn(self, message: str) -> None:
        if not self.quiet:
            self.console.print(f"[yellow]Warning:[/yellow] {escape(message)}")

    def verbose(self, message: str) -> None:
        if self.verbose_enabled:
            self.console.print(f"[dim]{escape(message)}[/dim]")

    def error(self, message: str) -> None:
        self.console.print(f"[red]Error:[/red] {escape(message)}")


def configure_logging(verbose: bool = False, quiet: bool = False, console: Optional[Console] = None) -> None:
    """Route the package's :mod:`logging` records to a Rich handler on stderr."""
    level = logging.DEBUG if verbose else logging.ERROR if quiet else logging.WARNING
    pkg_logger = logging.getLogger(PACKAGE_LOGGER)
    pkg_logger.setLevel(level)
    if not any(isinstance(h, RichHandler) for h in pkg_logger.handlers):
        pkg_logger.addHandler(
            RichHandler(console=console or Console(stderr=True), show_path=False, markup=False)
        )
    pkg_logger.propagate = False
