"""Single-linkage clustering of near-duplicate chunks.

Edges connect two chunks whose cosine similarity meets the near-duplicate
threshold; connected components (union-find) of at least ``min_cluster_size``
chunks become clusters. Output is a pure function of the input set: members
are processed in id order, so shuffling the input never changes groupings or
the nominated canonical chunk.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from canon.db.models import ChunkStatus
from canon.match.similarity import cosine_similarity


@dataclass(frozen=True)
class ClusterMember:
    """The fields of a chunk the cluster builder looks at."""

    id: str
    embedding: Sequence[float]
    status: ChunkStatus = ChunkStatus.INFERRED
    confidence_score: float | None = None
    usage_count: int = 0
    normalised_text: str = ""


@dataclass
class ClusterPlan:
    """A cluster to be persisted: member ids (sorted) and the nominated canonical."""

    chunk_ids: list[str]
    canonical_chunk_id: str

    @property
    def size(self) -> int:
        return len(self.chunk_ids)


class UnionFind:
    """Disjoint-set forest with path compression and union by rank."""

    def __init__(self, items: Sequence[str]) -> None:
        self._parent: dict[str, str] = {item: item for item in items}
        self._rank: dict[str, int] = {item: 0 for item in items}

    def find(self, item: str) -> str:
        root = item
        while self._parent[root] != root:
            root = self._parent[root]
        while self._parent[item] != root:
            self._parent[item], item = root, self._parent[item]
        return root

    def union(self, a: str, b: str) -> bool:
        """Merge the sets of *a* and *b*. Returns False if already merged."""
        root_a, root_b = self.find(a), self.find(b)
        if root_a == root_b:
            return False
        if self._rank[root_a] < self._rank[root_b]:
            root_a, root_b = root_b, root_a
        self._parent[root_b] = root_a
        if self._rank[root_a] == self._rank[root_b]:
            self._rank[root_a] += 1
        return True

    def groups(self) -> list[list[str]]:
        """All sets, members sorted, sets ordered by their smallest member."""
        by_root: dict[str, list[str]] = {}
        for item in self._parent:
            by_root.setdefault(self.find(item), []).append(item)
        return sorted((sorted(g) for g in by_root.values()), key=lambda g: g[0])


def canonical_priority(member: ClusterMember) -> tuple:
    """Sort key: APPROVED first, then confidence, usage (both high first), then id."""
    return (
        member.status != ChunkStatus.APPROVED,
        -(member.confidence_score or 0.0),
        -member.usage_count,
        member.id,
    )


def select_canonical(members: Sequence[ClusterMember]) -> ClusterMember:
    """Return the member with the best canonical priority.

    Raises:
        ValueError: If *members* is empty.
    """
    if not members:
        raise ValueError("cannot select a canonical chunk from an empty cluster")
    return min(members, key=canonical_priority)


def build_clusters(
    members: Sequence[ClusterMember],
    near_duplicate_threshold: float = 0.85,
    min_cluster_size: int = 2,
) -> list[ClusterPlan]:
    """Group *members* into clusters of near-duplicates.

    Args:
        members: Chunks to cluster (typically those created by one ingestion).
        near_duplicate_threshold: Minimum similarity for an edge.
        min_cluster_size: Components smaller than this are not clustered.

    Returns:
        ClusterPlans ordered by their smallest member id.

    Raises:
        ValueError: On duplicate member ids or ``min_cluster_size < 1``.
        DimensionMismatchError: If embeddings differ in length.
    """
    if min_cluster_size < 1:
        raise ValueError("min_cluster_size must be >= 1")
    ordered = sorted(members, key=lambda m: m.id)
    ids = [m.id for m in ordered]
    if len(set(ids)) != len(ids):
        raise ValueError("cluster members must have unique ids")

    forest = UnionFind(ids)
    for i, a in enumerate(ordered):
        for b in ordered[i + 1 :]:
            if cosine_similarity(a.embedding, b.embedding) >= near_duplicate_threshold:
                forest.union(a.id, b.id)

    by_id = {m.id: m for m in ordered}
    plans: list[ClusterPlan] = []
    for group in forest.groups():
        if len(group) < min_cluster_size:
            continue
        canonical = select_canonical([by_id[i] for i in group])
        plans.append(ClusterPlan(chunk_ids=group, canonical_chunk_id=canonical.id))
    return plans
