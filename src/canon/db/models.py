"""Domain models for the Canon repository."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum


class ChunkStatus(str, Enum):
    INFERRED = "INFERRED"
    APPROVED = "APPROVED"
    DEPRECATED = "DEPRECATED"


class ChunkSource(str, Enum):
    WEBSITE_CRAWL = "WEBSITE_CRAWL"
    DOCUMENT_UPLOAD = "DOCUMENT_UPLOAD"
    MANUAL = "MANUAL"
    GENERATED = "GENERATED"


class ConflictSeverity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


@dataclass
class Chunk:
    brand_id: str
    text: str
    normalised_text: str
    id: str = ""  # assigned by Repository.create_chunk() when empty
    embedding: list[float] | None = None
    category: str | None = None
    sub_category: str | None = None
    channel: str | None = None
    intent: str | None = None
    tone_tags: list[str] = field(default_factory=list)
    confidence_score: float | None = None
    status: ChunkStatus = ChunkStatus.INFERRED
    canonical: bool = False
    locked: bool = False
    usage_count: int = 0
    last_used_at: str | None = None
    source: ChunkSource = ChunkSource.MANUAL
    source_id: str | None = None
    source_url: str | None = None
    source_page: str | None = None
    cluster_id: str | None = None
    metadata: str = field(default_factory=lambda: "{}")
    approved_by: str | None = None
    approved_at: str | None = None
    deprecated_by: str | None = None
    deprecated_at: str | None = None
    created_at: str | None = None

    @property
    def metadata_dict(self) -> dict:
        return json.loads(self.metadata)

    @property
    def approved(self) -> bool:
        return self.status == ChunkStatus.APPROVED


@dataclass
class Cluster:
    brand_id: str
    id: str = ""
    canonical_chunk_id: str | None = None
    variant_count: int = 0
    concept_summary: str | None = None
    created_at: str | None = None


@dataclass
class Conflict:
    brand_id: str
    cluster_id: str | None
    chunk_id_1: str
    chunk_id_2: str
    id: str = ""
    severity: ConflictSeverity = ConflictSeverity.MEDIUM
    description: str = ""
    resolved: bool = False
    resolved_by: str | None = None
    resolved_at: str | None = None
    created_at: str | None = None
