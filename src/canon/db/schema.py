"""Schema entry point: bring a connection up to the current version."""

from __future__ import annotations

import sqlite3

from canon.db.migrations import MIGRATIONS, run_migrations

CURRENT_VERSION = MIGRATIONS[-1][0]

TABLES = ("chunks", "clusters", "conflicts")


def initialize(conn: sqlite3.Connection) -> int:
    """Apply pending migrations and return the schema version now in place."""
    run_migrations(conn)
    return schema_version(conn)


def schema_version(conn: sqlite3.Connection) -> int:
    """Highest applied migration; 0 for a database that was never initialized."""
    bootstrapped = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'schema_version'"
    ).fetchone()
    if bootstrapped is None:
        return 0
    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    return row[0] or 0
