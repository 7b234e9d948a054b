"""Repository pattern for all Canon database operations.

Single interface for: chunks (with float32 embeddings), clusters, conflicts.
Every method takes an explicit ``brand_id``; no query spans brands.
Embeddings are stored with ``sqlite_vec.serialize_float32`` and read back
through sqlite-vec's ``vec_to_json()``.
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import sqlite_vec

from canon.db.models import (
    Chunk,
    ChunkSource,
    ChunkStatus,
    Cluster,
    Conflict,
    ConflictSeverity,
)

_CHUNK_COLUMNS = (
    "id, brand_id, text, normalised_text, "
    "CASE WHEN embedding IS NULL THEN NULL ELSE vec_to_json(embedding) END AS embedding_json, "
    "category, sub_category, channel, intent, tone_tags, confidence_score, status, "
    "canonical, locked, usage_count, last_used_at, source, source_id, source_url, "
    "source_page, cluster_id, metadata, approved_by, approved_at, deprecated_by, "
    "deprecated_at, created_at"
)

# Columns update_chunk() may touch. id, brand_id and created_at are immutable.
_CHUNK_UPDATABLE = frozenset(
    [
        "text",
        "normalised_text",
        "embedding",
        "category",
        "sub_category",
        "channel",
        "intent",
        "tone_tags",
        "confidence_score",
        "status",
        "canonical",
        "locked",
        "usage_count",
        "last_used_at",
        "cluster_id",
        "metadata",
        "approved_by",
        "approved_at",
        "deprecated_by",
        "deprecated_at",
    ]
)

_CLUSTER_UPDATABLE = frozenset(["canonical_chunk_id", "variant_count", "concept_summary"])

_CONFLICT_UPDATABLE = frozenset(
    ["severity", "description", "resolved", "resolved_by", "resolved_at"]
)

_CHUNK_ORDER_COLUMNS = {
    "created_at": "created_at",
    "usage_count": "usage_count",
    "last_used_at": "last_used_at",
    "confidence_score": "confidence_score",
}


def utcnow() -> str:
    """Current UTC time as an ISO-8601 string (seconds precision)."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass
class ChunkFilter:
    """Brand-local chunk filter. ``None`` fields are not applied.

    Attributes:
        status: Only chunks with this status.
        exclude_statuses: Chunks with any of these statuses are skipped.
        category / intent / channel / source: Exact-match filters.
        cluster_id: Only members of this cluster.
        search: Case-insensitive substring match on text or category.
    """

    status: ChunkStatus | None = None
    exclude_statuses: list[ChunkStatus] = field(default_factory=list)
    category: str | None = None
    intent: str | None = None
    channel: str | None = None
    source: ChunkSource | None = None
    cluster_id: str | None = None
    search: str | None = None


class Repository:
    """Data access layer for all Canon database entities.

    Wraps an open sqlite3.Connection. The connection is owned by the caller
    and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded and schema
                initialised (see canon.db.schema.initialize).
        """
        self._conn = conn

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def create_chunk(self, chunk: Chunk) -> Chunk:
        """Insert *chunk* and return it as stored (id and created_at set)."""
        chunk_id = chunk.id or str(uuid.uuid4())
        self._conn.execute(
            """
            INSERT INTO chunks (
                id, brand_id, text, normalised_text, embedding, category, sub_category,
                channel, intent, tone_tags, confidence_score, status, canonical, locked,
                usage_count, last_used_at, source, source_id, source_url, source_page,
                cluster_id, metadata, approved_by, approved_at, deprecated_by, deprecated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                chunk_id,
                chunk.brand_id,
                chunk.text,
                chunk.normalised_text,
                _serialize_embedding(chunk.embedding),
                chunk.category,
                chunk.sub_category,
                chunk.channel,
                chunk.intent,
                json.dumps(list(chunk.tone_tags)),
                chunk.confidence_score,
                ChunkStatus(chunk.status).value,
                int(chunk.canonical),
                int(chunk.locked),
                chunk.usage_count,
                chunk.last_used_at,
                ChunkSource(chunk.source).value,
                chunk.source_id,
                chunk.source_url,
                chunk.source_page,
                chunk.cluster_id,
                chunk.metadata,
                chunk.approved_by,
                chunk.approved_at,
                chunk.deprecated_by,
                chunk.deprecated_at,
            ),
        )
        self._conn.commit()
        created = self.get_chunk(chunk.brand_id, chunk_id)
        assert created is not None
        return created

    def get_chunk(self, brand_id: str, chunk_id: str) -> Chunk | None:
        """Return a chunk by id within *brand_id*, or None if not found."""
        row = self._conn.execute(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE brand_id = ? AND id = ?",
            (brand_id, chunk_id),
        ).fetchone()
        return _row_to_chunk(row) if row else None

    def find_chunks(
        self,
        brand_id: str,
        flt: ChunkFilter | None = None,
        limit: int | None = 50,
        offset: int = 0,
        order_by: str = "created_at",
        descending: bool = False,
    ) -> list[Chunk]:
        """Return chunks of *brand_id* matching *flt*.

        Ordering is by *order_by* then id, so results are stable across calls.

        Args:
            brand_id: Tenant partition key.
            flt: Optional filter; None returns every chunk of the brand.
            limit: Maximum rows (None for no limit).
            offset: Rows to skip (pagination).
            order_by: One of created_at, usage_count, last_used_at, confidence_score.
            descending: Sort direction for *order_by*.
        """
        if order_by not in _CHUNK_ORDER_COLUMNS:
            raise ValueError(
                f"order_by must be one of {sorted(_CHUNK_ORDER_COLUMNS)}, got {order_by!r}"
            )
        where, params = _chunk_where(brand_id, flt)
        direction = "DESC" if descending else "ASC"
        sql = (
            f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE {where} "
            f"ORDER BY {_CHUNK_ORDER_COLUMNS[order_by]} {direction}, id ASC"
        )
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params.extend([limit, offset])
        rows = self._conn.execute(sql, params).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def count_chunks(self, brand_id: str, flt: ChunkFilter | None = None) -> int:
        """Return the number of chunks of *brand_id* matching *flt*."""
        where, params = _chunk_where(brand_id, flt)
        return self._conn.execute(
            f"SELECT COUNT(*) FROM chunks WHERE {where}", params
        ).fetchone()[0]

    def update_chunk(self, brand_id: str, chunk_id: str, /, **fields: Any) -> bool:
        """Update columns of one chunk. Returns False if the chunk does not exist."""
        if not fields:
            return self.get_chunk(brand_id, chunk_id) is not None
        assignments, params = _assignments(fields, _CHUNK_UPDATABLE, _chunk_value)
        cur = self._conn.execute(
            f"UPDATE chunks SET {assignments} WHERE brand_id = ? AND id = ?",
            [*params, brand_id, chunk_id],
        )
        self._conn.commit()
        return cur.rowcount > 0

    def delete_chunk(self, brand_id: str, chunk_id: str) -> bool:
        """Delete one chunk. Returns False if it did not exist."""
        cur = self._conn.execute(
            "DELETE FROM chunks WHERE brand_id = ? AND id = ?", (brand_id, chunk_id)
        )
        self._conn.commit()
        return cur.rowcount > 0

    def record_usage(self, brand_id: str, chunk_ids: list[str]) -> int:
        """Increment usage_count and stamp last_used_at. Returns rows touched."""
        if not chunk_ids:
            return 0
        placeholders = ",".join("?" * len(chunk_ids))
        cur = self._conn.execute(
            f"""
            UPDATE chunks SET usage_count = usage_count + 1, last_used_at = ?
            WHERE brand_id = ? AND id IN ({placeholders})
            """,
            [utcnow(), brand_id, *chunk_ids],
        )
        self._conn.commit()
        return cur.rowcount

    # ------------------------------------------------------------------
    # Clusters
    # ------------------------------------------------------------------

    def create_cluster(self, cluster: Cluster) -> Cluster:
        """Insert *cluster* and return it as stored."""
        cluster_id = cluster.id or str(uuid.uuid4())
        self._conn.execute(
            """
            INSERT INTO clusters (id, brand_id, canonical_chunk_id, variant_count, concept_summary)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                cluster_id,
                cluster.brand_id,
                cluster.canonical_chunk_id,
                cluster.variant_count,
                cluster.concept_summary,
            ),
        )
        self._conn.commit()
        created = self.get_cluster(cluster.brand_id, cluster_id)
        assert created is not None
        return created

    def get_cluster(self, brand_id: str, cluster_id: str) -> Cluster | None:
        """Return a cluster by id within *brand_id*, or None if not found."""
        row = self._conn.execute(
            """
            SELECT id, brand_id, canonical_chunk_id, variant_count, concept_summary, created_at
            FROM clusters WHERE brand_id = ? AND id = ?
            """,
            (brand_id, cluster_id),
        ).fetchone()
        return _row_to_cluster(row) if row else None

    def list_clusters(
        self, brand_id: str, limit: int | None = 50, offset: int = 0
    ) -> list[Cluster]:
        """Return clusters of *brand_id*, largest first."""
        sql = """
            SELECT id, brand_id, canonical_chunk_id, variant_count, concept_summary, created_at
            FROM clusters WHERE brand_id = ?
            ORDER BY variant_count DESC, created_at DESC, id ASC
        """
        params: list[Any] = [brand_id]
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params.extend([limit, offset])
        return [_row_to_cluster(r) for r in self._conn.execute(sql, params).fetchall()]

    def update_cluster(self, brand_id: str, cluster_id: str, /, **fields: Any) -> bool:
        """Update columns of one cluster. Returns False if it does not exist."""
        if not fields:
            return self.get_cluster(brand_id, cluster_id) is not None
        assignments, params = _assignments(fields, _CLUSTER_UPDATABLE, lambda _k, v: v)
        cur = self._conn.execute(
            f"UPDATE clusters SET {assignments} WHERE brand_id = ? AND id = ?",
            [*params, brand_id, cluster_id],
        )
        self._conn.commit()
        return cur.rowcount > 0

    def update_chunks_by_cluster(self, brand_id: str, cluster_id: str, /, **fields: Any) -> int:
        """Apply *fields* to every member of *cluster_id*. Returns rows touched."""
        assignments, params = _assignments(fields, _CHUNK_UPDATABLE, _chunk_value)
        cur = self._conn.execute(
            f"UPDATE chunks SET {assignments} WHERE brand_id = ? AND cluster_id = ?",
            [*params, brand_id, cluster_id],
        )
        self._conn.commit()
        return cur.rowcount

    def assign_cluster(self, brand_id: str, cluster_id: str, chunk_ids: list[str]) -> int:
        """Point *chunk_ids* at *cluster_id*. Returns rows touched."""
        if not chunk_ids:
            return 0
        placeholders = ",".join("?" * len(chunk_ids))
        cur = self._conn.execute(
            f"UPDATE chunks SET cluster_id = ? WHERE brand_id = ? AND id IN ({placeholders})",
            [cluster_id, brand_id, *chunk_ids],
        )
        self._conn.commit()
        return cur.rowcount

    def cluster_members(self, brand_id: str, cluster_id: str) -> list[Chunk]:
        """Members of *cluster_id*: canonical first, then approved, then most used."""
        rows = self._conn.execute(
            f"""
            SELECT {_CHUNK_COLUMNS} FROM chunks
            WHERE brand_id = ? AND cluster_id = ?
            ORDER BY canonical DESC, (status = 'APPROVED') DESC, usage_count DESC, id ASC
            """,
            (brand_id, cluster_id),
        ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def set_cluster_canonical(
        self, brand_id: str, cluster_id: str, chunk_id: str | None
    ) -> None:
        """Clear the canonical flag on every member, then set it on *chunk_id*.

        Runs as a single transaction: either all three writes land or none.
        Eligibility (member + APPROVED) is the caller's responsibility.
        """
        with self._conn:
            self._conn.execute(
                "UPDATE chunks SET canonical = 0 WHERE brand_id = ? AND cluster_id = ?",
                (brand_id, cluster_id),
            )
            if chunk_id is not None:
                self._conn.execute(
                    "UPDATE chunks SET canonical = 1 WHERE brand_id = ? AND id = ? AND cluster_id = ?",
                    (brand_id, chunk_id, cluster_id),
                )
            self._conn.execute(
                "UPDATE clusters SET canonical_chunk_id = ? WHERE brand_id = ? AND id = ?",
                (chunk_id, brand_id, cluster_id),
            )

    # ------------------------------------------------------------------
    # Conflicts
    # ------------------------------------------------------------------

    def create_conflict(self, conflict: Conflict) -> Conflict:
        """Insert *conflict* and return it as stored."""
        conflict_id = conflict.id or str(uuid.uuid4())
        self._conn.execute(
            """
            INSERT INTO conflicts (
                id, brand_id, cluster_id, chunk_id_1, chunk_id_2, severity, description,
                resolved, resolved_by, resolved_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                conflict_id,
                conflict.brand_id,
                conflict.cluster_id,
                conflict.chunk_id_1,
                conflict.chunk_id_2,
                ConflictSeverity(conflict.severity).value,
                conflict.description,
                int(conflict.resolved),
                conflict.resolved_by,
                conflict.resolved_at,
            ),
        )
        self._conn.commit()
        created = self.get_conflict(conflict.brand_id, conflict_id)
        assert created is not None
        return created

    def get_conflict(self, brand_id: str, conflict_id: str) -> Conflict | None:
        """Return a conflict by id within *brand_id*, or None if not found."""
        row = self._conn.execute(
            """
            SELECT id, brand_id, cluster_id, chunk_id_1, chunk_id_2, severity, description,
                   resolved, resolved_by, resolved_at, created_at
            FROM conflicts WHERE brand_id = ? AND id = ?
            """,
            (brand_id, conflict_id),
        ).fetchone()
        return _row_to_conflict(row) if row else None

    def list_conflicts(
        self,
        brand_id: str,
        resolved: bool | None = None,
        cluster_id: str | None = None,
    ) -> list[Conflict]:
        """Return conflicts of *brand_id*, most severe and newest first."""
        sql = """
            SELECT id, brand_id, cluster_id, chunk_id_1, chunk_id_2, severity, description,
                   resolved, resolved_by, resolved_at, created_at
            FROM conflicts WHERE brand_id = ?
        """
        params: list[Any] = [brand_id]
        if resolved is not None:
            sql += " AND resolved = ?"
            params.append(int(resolved))
        if cluster_id is not None:
            sql += " AND cluster_id = ?"
            params.append(cluster_id)
        sql += """
            ORDER BY CASE severity WHEN 'HIGH' THEN 3 WHEN 'MEDIUM' THEN 2 ELSE 1 END DESC,
                     created_at DESC, id ASC
        """
        return [_row_to_conflict(r) for r in self._conn.execute(sql, params).fetchall()]

    def update_conflict(self, brand_id: str, conflict_id: str, /, **fields: Any) -> bool:
        """Update columns of one conflict. Returns False if it does not exist."""
        if not fields:
            return self.get_conflict(brand_id, conflict_id) is not None
        assignments, params = _assignments(fields, _CONFLICT_UPDATABLE, _conflict_value)
        cur = self._conn.execute(
            f"UPDATE conflicts SET {assignments} WHERE brand_id = ? AND id = ?",
            [*params, brand_id, conflict_id],
        )
        self._conn.commit()
        return cur.rowcount > 0


# ------------------------------------------------------------------
# SQL helpers
# ------------------------------------------------------------------


def _chunk_where(brand_id: str, flt: ChunkFilter | None) -> tuple[str, list[Any]]:
    clauses = ["brand_id = ?"]
    params: list[Any] = [brand_id]
    if flt is None:
        return clauses[0], params

    if flt.status is not None:
        clauses.append("status = ?")
        params.append(ChunkStatus(flt.status).value)
    if flt.exclude_statuses:
        placeholders = ",".join("?" * len(flt.exclude_statuses))
        clauses.append(f"status NOT IN ({placeholders})")
        params.extend(ChunkStatus(s).value for s in flt.exclude_statuses)
    for column in ("category", "intent", "channel", "cluster_id"):
        value = getattr(flt, column)
        if value is not None:
            clauses.append(f"{column} = ?")
            params.append(value)
    if flt.source is not None:
        clauses.append("source = ?")
        params.append(ChunkSource(flt.source).value)
    if flt.search:
        clauses.append("(text LIKE ? COLLATE NOCASE OR category LIKE ? COLLATE NOCASE)")
        pattern = f"%{flt.search}%"
        params.extend([pattern, pattern])
    return " AND ".join(clauses), params


def _assignments(
    fields: dict[str, Any], allowed: frozenset[str], convert
) -> tuple[str, list[Any]]:
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Cannot update column(s): {', '.join(sorted(unknown))}")
    columns = sorted(fields)
    assignments = ", ".join(f"{c} = ?" for c in columns)
    return assignments, [convert(c, fields[c]) for c in columns]


def _chunk_value(column: str, value: Any) -> Any:
    if value is None:
        return None
    if column == "embedding":
        return _serialize_embedding(value)
    if column == "tone_tags":
        return json.dumps(list(value))
    if column == "metadata" and isinstance(value, dict):
        return json.dumps(value)
    if column in ("canonical", "locked"):
        return int(bool(value))
    if column == "status":
        return ChunkStatus(value).value
    return value


def _conflict_value(column: str, value: Any) -> Any:
    if column == "resolved":
        return int(bool(value))
    if column == "severity" and value is not None:
        return ConflictSeverity(value).value
    return value


def _serialize_embedding(embedding: list[float] | None) -> bytes | None:
    if embedding is None:
        return None
    return sqlite_vec.serialize_float32(list(embedding))


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    embedding_json = row["embedding_json"]
    return Chunk(
        id=row["id"],
        brand_id=row["brand_id"],
        text=row["text"],
        normalised_text=row["normalised_text"],
        embedding=json.loads(embedding_json) if embedding_json else None,
        category=row["category"],
        sub_category=row["sub_category"],
        channel=row["channel"],
        intent=row["intent"],
        tone_tags=json.loads(row["tone_tags"]),
        confidence_score=row["confidence_score"],
        status=ChunkStatus(row["status"]),
        canonical=bool(row["canonical"]),
        locked=bool(row["locked"]),
        usage_count=row["usage_count"],
        last_used_at=row["last_used_at"],
        source=ChunkSource(row["source"]),
        source_id=row["source_id"],
        source_url=row["source_url"],
        source_page=row["source_page"],
        cluster_id=row["cluster_id"],
        metadata=row["metadata"],
        approved_by=row["approved_by"],
        approved_at=row["approved_at"],
        deprecated_by=row["deprecated_by"],
        deprecated_at=row["deprecated_at"],
        created_at=row["created_at"],
    )


def _row_to_cluster(row: sqlite3.Row) -> Cluster:
    return Cluster(
        id=row["id"],
        brand_id=row["brand_id"],
        canonical_chunk_id=row["canonical_chunk_id"],
        variant_count=row["variant_count"],
        concept_summary=row["concept_summary"],
        created_at=row["created_at"],
    )


def _row_to_conflict(row: sqlite3.Row) -> Conflict:
    return Conflict(
        id=row["id"],
        brand_id=row["brand_id"],
        cluster_id=row["cluster_id"],
        chunk_id_1=row["chunk_id_1"],
        chunk_id_2=row["chunk_id_2"],
        severity=ConflictSeverity(row["severity"]),
        description=row["description"],
        resolved=bool(row["resolved"]),
        resolved_by=row["resolved_by"],
        resolved_at=row["resolved_at"],
        created_at=row["created_at"],
    )
