"""Forward-only migration runner for the Canon database schema."""

from __future__ import annotations

import sqlite3

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

# cluster_id / canonical_chunk_id / chunk_id_* are weak references: plain ids,
# no foreign keys, so chunk and cluster lifecycles stay independent.
_V1_SQL = """
CREATE TABLE IF NOT EXISTS chunks (
    id                  TEXT PRIMARY KEY,
    brand_id            TEXT NOT NULL,
    text                TEXT NOT NULL,
    normalised_text     TEXT NOT NULL,
    embedding           BLOB,
    category            TEXT,
    sub_category        TEXT,
    channel             TEXT,
    intent              TEXT,
    tone_tags           TEXT NOT NULL DEFAULT '[]',
    confidence_score    REAL,
    status              TEXT NOT NULL DEFAULT 'INFERRED',
    canonical           INTEGER NOT NULL DEFAULT 0,
    locked              INTEGER NOT NULL DEFAULT 0,
    usage_count         INTEGER NOT NULL DEFAULT 0,
    last_used_at        DATETIME,
    source              TEXT NOT NULL,
    source_id           TEXT,
    source_url          TEXT,
    source_page         TEXT,
    cluster_id          TEXT,
    metadata            TEXT NOT NULL DEFAULT '{}',
    approved_by         TEXT,
    approved_at         DATETIME,
    deprecated_by       TEXT,
    deprecated_at       DATETIME,
    created_at          DATETIME NOT NULL DEFAULT (strftime('%Y-%m-%d %H:%M:%f', 'now'))
);

CREATE INDEX IF NOT EXISTS idx_chunks_brand_status ON chunks(brand_id, status);
CREATE INDEX IF NOT EXISTS idx_chunks_brand_cluster ON chunks(brand_id, cluster_id);

CREATE TABLE IF NOT EXISTS clusters (
    id                  TEXT PRIMARY KEY,
    brand_id            TEXT NOT NULL,
    canonical_chunk_id  TEXT,
    variant_count       INTEGER NOT NULL DEFAULT 0,
    concept_summary     TEXT,
    created_at          DATETIME NOT NULL DEFAULT (strftime('%Y-%m-%d %H:%M:%f', 'now'))
);

CREATE INDEX IF NOT EXISTS idx_clusters_brand ON clusters(brand_id);

CREATE TABLE IF NOT EXISTS conflicts (
    id                  TEXT PRIMARY KEY,
    brand_id            TEXT NOT NULL,
    cluster_id          TEXT,
    chunk_id_1          TEXT NOT NULL,
    chunk_id_2          TEXT NOT NULL,
    severity            TEXT NOT NULL DEFAULT 'MEDIUM',
    description         TEXT NOT NULL DEFAULT '',
    resolved            INTEGER NOT NULL DEFAULT 0,
    resolved_by         TEXT,
    resolved_at         DATETIME,
    created_at          DATETIME NOT NULL DEFAULT (strftime('%Y-%m-%d %H:%M:%f', 'now'))
);

CREATE INDEX IF NOT EXISTS idx_conflicts_brand_resolved ON conflicts(brand_id, resolved);
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
]


def run_migrations(conn: sqlite3.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.
    """
    conn.execute(_CREATE_SCHEMA_VERSION)
    conn.commit()

    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    current = row[0] if row[0] is not None else 0

    for version, sql in MIGRATIONS:
        if version > current:
            conn.executescript(sql)
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
            conn.commit()
