"""Similarity query over a brand's stored chunks.

Ranking is priority-first, similarity-last:

  1. canonical chunks first      (when prefer_canonical)
  2. approved chunks next        (when prefer_approved)
  3. higher usage_count
  4. higher similarity

so a canonical chunk at 0.80 outranks an inferred one at 0.95 as long as both
clear ``min_similarity``.
"""

from __future__ import annotations

from dataclasses import dataclass

from canon.db.models import Chunk, ChunkStatus
from canon.db.repository import ChunkFilter, Repository
from canon.errors import ValidationError
from canon.ingest.embedder import Embedder
from canon.match.similarity import cosine_similarity

MAX_LIMIT = 20


@dataclass
class QueryOptions:
    """Filters and ranking switches for query_similar().

    Attributes:
        category / intent / channel: Exact-match filters (None = any).
        limit: Maximum results, 1..20.
        min_similarity: Similarity floor in [0, 1].
        prefer_canonical: Rank canonical chunks ahead of the rest.
        prefer_approved: Rank approved chunks ahead of inferred ones.
        candidate_pool: How many stored chunks are scored per query.
    """

    category: str | None = None
    intent: str | None = None
    channel: str | None = None
    limit: int = 5
    min_similarity: float = 0.75
    prefer_canonical: bool = True
    prefer_approved: bool = True
    candidate_pool: int = 100


@dataclass
class RankedChunk:
    chunk: Chunk
    similarity: float


def validate_options(query: str, options: QueryOptions) -> None:
    """Raise ValidationError for malformed query input."""
    if not isinstance(query, str) or not query.strip():
        raise ValidationError("query must be a non-empty string")
    if not 1 <= options.limit <= MAX_LIMIT:
        raise ValidationError(f"limit must be between 1 and {MAX_LIMIT}, got {options.limit}")
    if not 0.0 <= options.min_similarity <= 1.0:
        raise ValidationError(
            f"min_similarity must be between 0 and 1, got {options.min_similarity}"
        )
    if options.candidate_pool < 1:
        raise ValidationError(f"candidate_pool must be >= 1, got {options.candidate_pool}")


def query_similar(
    repo: Repository,
    embedder: Embedder,
    brand_id: str,
    query: str,
    options: QueryOptions | None = None,
) -> list[RankedChunk]:
    """Return up to ``options.limit`` chunks similar to *query*, best-first.

    Deprecated chunks are never returned. The candidate pool is the brand's
    most-used chunks matching the filters, capped at ``options.candidate_pool``.

    Raises:
        ValidationError: Malformed query or options (before any embed call).
        DimensionMismatchError: A stored embedding differs in length from the query.
    """
    opts = options or QueryOptions()
    validate_options(query, opts)

    query_vector = embedder.embed(query)
    pool = repo.find_chunks(
        brand_id,
        ChunkFilter(
            exclude_statuses=[ChunkStatus.DEPRECATED],
            category=opts.category,
            intent=opts.intent,
            channel=opts.channel,
        ),
        limit=opts.candidate_pool,
        order_by="usage_count",
        descending=True,
    )

    scored: list[RankedChunk] = []
    for chunk in pool:
        if chunk.embedding is None:
            continue
        similarity = cosine_similarity(query_vector, chunk.embedding)
        if similarity >= opts.min_similarity:
            scored.append(RankedChunk(chunk=chunk, similarity=similarity))

    scored.sort(key=lambda r: _rank_key(r, opts))
    return scored[: opts.limit]


def _rank_key(ranked: RankedChunk, opts: QueryOptions) -> tuple:
    chunk = ranked.chunk
    return (
        not chunk.canonical if opts.prefer_canonical else False,
        chunk.status != ChunkStatus.APPROVED if opts.prefer_approved else False,
        -chunk.usage_count,
        -ranked.similarity,
        chunk.id,
    )
