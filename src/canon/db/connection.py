"""Connections to a project's ``.canon.db``.

Every connection loads sqlite-vec (embeddings are stored in its float32 BLOB
format), uses WAL journaling so a review command can read while an ingestion
writes, and waits on a locked database instead of failing immediately.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

import sqlite_vec

BUSY_TIMEOUT_MS = 5_000


class Database:
    """One brand language repository file."""

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None

    @property
    def exists(self) -> bool:
        return self.db_path.is_file()

    def connect(self) -> sqlite3.Connection:
        """Open a connection, creating the file (and parent dirs) if missing."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.enable_load_extension(True)
        try:
            sqlite_vec.load(conn)
        finally:
            conn.enable_load_extension(False)
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute(f"PRAGMA busy_timeout = {BUSY_TIMEOUT_MS}")
        return conn

    def __enter__(self) -> sqlite3.Connection:
        self._conn = self.connect()
        return self._conn

    def __exit__(self, *args: object) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None


def vec_version(conn: sqlite3.Connection) -> str:
    """Version string of the loaded sqlite-vec extension (e.g. ``v0.1.6``)."""
    return conn.execute("SELECT vec_version()").fetchone()[0]
