"""Canon database layer."""

from canon.db.connection import Database
from canon.db.migrations import MIGRATIONS, run_migrations
from canon.db.models import Chunk, ChunkSource, ChunkStatus, Cluster, Conflict, ConflictSeverity
from canon.db.repository import ChunkFilter, Repository
from canon.db.schema import initialize

__all__ = [
    "Chunk",
    "ChunkFilter",
    "ChunkSource",
    "ChunkStatus",
    "Cluster",
    "Conflict",
    "ConflictSeverity",
    "Database",
    "MIGRATIONS",
    "Repository",
    "initialize",
    "run_migrations",
]
