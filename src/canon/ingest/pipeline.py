"""Ingestion pipeline: raw copy → stored chunks → clusters → conflicts.

One call to ``ingest()`` is one logical, brand-scoped operation:

1. Validate the request (no storage or model call happens before this).
2. Chunk the content.
3. Classify and embed the chunks concurrently.
4. Read the candidate pool (non-deprecated chunks of the brand) once.
5. For each chunk in order: bucket it against the pool, then store it.
6. Cluster the chunks created by this call; store clusters.
7. Flag conflicts between approved members of the new clusters.

Chunk writes are sequential so every similarity check in step 5 sees the same
pool. Chunks are never deduplicated on write: re-ingesting identical copy
creates new rows whose ``duplicates`` list the earlier ones.
"""

from __future__ import annotations

import json
import threading
import urllib.parse
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable

from canon.config import CanonConfig
from canon.db.models import Chunk, ChunkSource, ChunkStatus, Cluster, Conflict
from canon.db.repository import ChunkFilter, Repository, utcnow
from canon.errors import ValidationError
from canon.ingest.chunker import ContentChunker
from canon.ingest.classifier import (
    BrandContext,
    ClassificationCache,
    ClassificationResult,
    Classifier,
    classify_chunks,
)
from canon.ingest.embedder import Embedder, check_dimensions
from canon.match.clusters import ClusterMember, build_clusters
from canon.match.conflicts import detect_conflicts
from canon.match.similarity import SimilarMatch, find_similar

ProgressCallback = Callable[[str, int, int], None]

_SOURCE_ALIASES = {
    "crawl": ChunkSource.WEBSITE_CRAWL,
    "website_crawl": ChunkSource.WEBSITE_CRAWL,
    "upload": ChunkSource.DOCUMENT_UPLOAD,
    "document_upload": ChunkSource.DOCUMENT_UPLOAD,
    "manual": ChunkSource.MANUAL,
    "generated": ChunkSource.GENERATED,
}


@dataclass
class IngestRequest:
    """Content to ingest plus its provenance.

    Attributes:
        content: Raw copy (plain text or Markdown).
        source: Provenance; MANUAL content is stored pre-approved.
        source_id / source_url / source_page: Optional provenance details.
        actor: Who is ingesting; recorded as approver for MANUAL content.
    """

    content: str
    source: ChunkSource | str
    source_id: str | None = None
    source_url: str | None = None
    source_page: str | None = None
    actor: str | None = None


@dataclass
class ChunkWithSimilarity:
    """A stored chunk plus how it matched the pre-existing pool."""

    chunk: Chunk
    duplicates: list[SimilarMatch] = field(default_factory=list)
    near_duplicates: list[SimilarMatch] = field(default_factory=list)
    related: list[SimilarMatch] = field(default_factory=list)
    classification_failed: bool = False


@dataclass
class ClusterSummary:
    """A cluster created by this ingestion.

    ``representative_chunk_id`` is the builder's pick by priority;
    ``canonical_chunk_id`` is only set when that pick is APPROVED.
    """

    cluster_id: str
    chunk_ids: list[str]
    representative_chunk_id: str
    canonical_chunk_id: str | None


@dataclass
class IngestResult:
    chunks_created: int = 0
    clusters_created: int = 0
    conflicts_created: int = 0
    chunks: list[ChunkWithSimilarity] = field(default_factory=list)
    clusters: list[ClusterSummary] = field(default_factory=list)

    @property
    def classification_failures(self) -> int:
        return sum(1 for c in self.chunks if c.classification_failed)


def parse_source(value: ChunkSource | str) -> ChunkSource:
    """Accept a ChunkSource, its value, or a short alias (crawl/upload/manual/generated)."""
    if isinstance(value, ChunkSource):
        return value
    if isinstance(value, str):
        key = value.strip()
        if key.upper() in ChunkSource.__members__:
            return ChunkSource[key.upper()]
        if key.lower() in _SOURCE_ALIASES:
            return _SOURCE_ALIASES[key.lower()]
    allowed = ", ".join(sorted(_SOURCE_ALIASES))
    raise ValidationError(f"Unknown source {value!r}. Use one of: {allowed}")


def validate_request(request: IngestRequest, brand_id: str) -> ChunkSource:
    """Reject malformed requests. Returns the parsed source."""
    if not brand_id or not str(brand_id).strip():
        raise ValidationError("brand_id is required")
    if not isinstance(request.content, str) or not request.content.strip():
        raise ValidationError("content must be a non-empty string")
    source = parse_source(request.source)
    if request.source_url is not None:
        parsed = urllib.parse.urlparse(request.source_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValidationError(
                f"source_url must be an absolute http(s) URL, got {request.source_url!r}"
            )
    return source


def ingest(
    request: IngestRequest,
    brand_id: str,
    repo: Repository,
    classifier: Classifier,
    embedder: Embedder,
    config: CanonConfig | None = None,
    brand: BrandContext | None = None,
    cache: ClassificationCache | None = None,
    on_progress: ProgressCallback | None = None,
) -> IngestResult:
    """Ingest *request* for *brand_id*.

    Raises:
        ValidationError: Malformed request (nothing is read or written).
        DimensionMismatchError: Embedding length differs from the configured
            dimensionality or from vectors already stored for the brand.
        Exception: Embedder and storage errors propagate unchanged; chunks
            stored before the failure are not rolled back.
    """
    cfg = config or CanonConfig()
    source = validate_request(request, brand_id)
    progress = on_progress or (lambda stage, done, total: None)

    chunker = ContentChunker(
        min_chunk_size=cfg.chunking.min_chunk_size,
        max_chunk_size=cfg.chunking.max_chunk_size,
        avoid_patterns=cfg.chunking.avoid_patterns,
    )
    candidates = chunker.chunk(request.content)
    progress("chunk", len(candidates), len(candidates))
    if not candidates:
        return IngestResult()

    texts = [c.text for c in candidates]
    classifications, embeddings = _classify_and_embed(texts, classifier, embedder, cfg, brand, cache)
    progress("classify", len(texts), len(texts))
    progress("embed", len(texts), len(texts))

    pool = repo.find_chunks(
        brand_id,
        ChunkFilter(exclude_statuses=[ChunkStatus.DEPRECATED]),
        limit=cfg.ingest.candidate_pool,
    )
    pool_vectors = [(c.id, c.embedding) for c in pool if c.embedding is not None]
    thresholds = cfg.similarity.thresholds()

    result = IngestResult()
    approved = source == ChunkSource.MANUAL
    now = utcnow() if approved else None
    for i, (candidate, classification, embedding) in enumerate(
        zip(candidates, classifications, embeddings)
    ):
        similar = find_similar(embedding, pool_vectors, thresholds)
        created = repo.create_chunk(
            Chunk(
                brand_id=brand_id,
                text=candidate.text,
                normalised_text=candidate.normalised_text,
                embedding=embedding,
                category=classification.category,
                sub_category=classification.sub_category,
                channel=classification.channel,
                intent=classification.intent,
                tone_tags=list(classification.tone_tags),
                confidence_score=classification.confidence_score,
                status=ChunkStatus.APPROVED if approved else ChunkStatus.INFERRED,
                source=source,
                source_id=request.source_id,
                source_url=request.source_url,
                source_page=request.source_page,
                metadata=json.dumps(candidate.metadata),
                approved_by=request.actor if approved else None,
                approved_at=now,
            )
        )
        result.chunks.append(
            ChunkWithSimilarity(
                chunk=created,
                duplicates=similar.duplicates,
                near_duplicates=similar.near_duplicates,
                related=similar.related,
                classification_failed=classification.failed,
            )
        )
        progress("store", i + 1, len(candidates))
    result.chunks_created = len(result.chunks)

    _persist_clusters(result, brand_id, repo, cfg)
    progress("cluster", result.clusters_created, result.clusters_created)
    return result


# ------------------------------------------------------------------
# Classification + embedding
# ------------------------------------------------------------------


def _classify_and_embed(
    texts: list[str],
    classifier: Classifier,
    embedder: Embedder,
    cfg: CanonConfig,
    brand: BrandContext | None,
    cache: ClassificationCache | None,
) -> tuple[list[ClassificationResult], list[list[float]]]:
    """Run classification and embedding side by side.

    Embedding errors propagate; classification cannot fail (per-chunk defaults).
    A failed embedding stops classification after its current batch.
    """
    stop = threading.Event()
    with ThreadPoolExecutor(max_workers=2) as pool:
        classify_future = pool.submit(
            classify_chunks,
            classifier,
            texts,
            brand,
            cfg.classification.batch_size,
            cfg.classification.max_workers,
            cache,
            stop,
        )
        embed_future = pool.submit(embedder.embed_many, texts)
        try:
            embeddings = embed_future.result()
            if len(embeddings) != len(texts):
                raise RuntimeError(f"Embedder returned {len(embeddings)} vectors for {len(texts)} chunks.")
            expected = getattr(embedder, "dimensions", None) or cfg.embedding.dimensions
            for vector in embeddings:
                check_dimensions(vector, expected)
        except BaseException:
            stop.set()
            raise
        classifications = classify_future.result()
    return classifications, embeddings


# ------------------------------------------------------------------
# Clusters + conflicts
# ------------------------------------------------------------------


def _persist_clusters(
    result: IngestResult, brand_id: str, repo: Repository, cfg: CanonConfig
) -> None:
    """Cluster the chunks created in this call and store clusters + conflicts."""
    by_id = {c.chunk.id: c.chunk for c in result.chunks}
    members = [
        ClusterMember(
            id=chunk.id,
            embedding=chunk.embedding or [],
            status=chunk.status,
            confidence_score=chunk.confidence_score,
            usage_count=chunk.usage_count,
            normalised_text=chunk.normalised_text,
        )
        for chunk in by_id.values()
    ]
    plans = build_clusters(
        members,
        near_duplicate_threshold=cfg.clustering.near_duplicate_threshold,
        min_cluster_size=cfg.clustering.min_cluster_size,
    )
    members_by_id = {m.id: m for m in members}

    for plan in plans:
        cluster = repo.create_cluster(Cluster(brand_id=brand_id, variant_count=plan.size))
        repo.assign_cluster(brand_id, cluster.id, plan.chunk_ids)
        for chunk_id in plan.chunk_ids:
            by_id[chunk_id].cluster_id = cluster.id

        canonical_id: str | None = None
        if by_id[plan.canonical_chunk_id].status == ChunkStatus.APPROVED:
            canonical_id = plan.canonical_chunk_id
            repo.set_cluster_canonical(brand_id, cluster.id, canonical_id)
            by_id[canonical_id].canonical = True

        result.clusters.append(
            ClusterSummary(
                cluster_id=cluster.id,
                chunk_ids=list(plan.chunk_ids),
                representative_chunk_id=plan.canonical_chunk_id,
                canonical_chunk_id=canonical_id,
            )
        )

        if cfg.clustering.flag_conflicts:
            for candidate in detect_conflicts(
                [members_by_id[i] for i in plan.chunk_ids],
                duplicate_threshold=cfg.similarity.duplicate,
            ):
                repo.create_conflict(
                    Conflict(
                        brand_id=brand_id,
                        cluster_id=cluster.id,
                        chunk_id_1=candidate.chunk_id_1,
                        chunk_id_2=candidate.chunk_id_2,
                        severity=candidate.severity,
                        description=candidate.description,
                    )
                )
                result.conflicts_created += 1

    result.clusters_created = len(plans)
