"""
turso_introspect
================

Schema introspection and diffing for SQLite / libSQL (Turso) databases.

The modules are intended to be used together via the CLI entry point:

- :mod:`turso_introspect.cli`

The core (snapshot model, ordering, formatting, diffing, retry) performs no I/O
and can be used as a library:

- :mod:`turso_introspect.schema`
- :mod:`turso_introspect.ordering`
- :mod:`turso_introspect.formatting`
- :mod:`turso_introspect.diffing`
- :mod:`turso_introspect.retry`
"""

__version__ = "1.0.0"
