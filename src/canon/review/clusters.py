"""Cluster curation: choosing the canonical phrasing and describing the concept."""

from __future__ import annotations

from canon.db.models import Chunk, ChunkStatus, Cluster
from canon.db.repository import Repository
from canon.errors import NotFoundError, ValidationError


def get_cluster_or_raise(repo: Repository, brand_id: str, cluster_id: str) -> Cluster:
    cluster = repo.get_cluster(brand_id, cluster_id)
    if cluster is None:
        raise NotFoundError("Cluster", cluster_id)
    return cluster


def set_cluster_canonical(
    repo: Repository, brand_id: str, cluster_id: str, chunk_id: str | None
) -> Cluster:
    """Make *chunk_id* the canonical member of *cluster_id* (None clears it).

    The target must be an APPROVED member of the cluster. All members lose the
    flag and the target gains it in one transaction.

    Raises:
        NotFoundError: Unknown cluster or chunk.
        ValidationError: Chunk is not a member, or not approved.
    """
    get_cluster_or_raise(repo, brand_id, cluster_id)
    if chunk_id is not None:
        chunk = repo.get_chunk(brand_id, chunk_id)
        if chunk is None:
            raise NotFoundError("Chunk", chunk_id)
        if chunk.cluster_id != cluster_id:
            raise ValidationError(f"Chunk '{chunk_id}' is not a member of cluster '{cluster_id}'")
        if chunk.status != ChunkStatus.APPROVED:
            raise ValidationError("Chunk must be approved to be canonical")

    repo.set_cluster_canonical(brand_id, cluster_id, chunk_id)
    return get_cluster_or_raise(repo, brand_id, cluster_id)


def update_cluster_summary(
    repo: Repository, brand_id: str, cluster_id: str, concept_summary: str | None
) -> Cluster:
    """Set (or clear, with None) the human-readable concept summary."""
    get_cluster_or_raise(repo, brand_id, cluster_id)
    repo.update_cluster(brand_id, cluster_id, concept_summary=concept_summary)
    return get_cluster_or_raise(repo, brand_id, cluster_id)


def cluster_detail(repo: Repository, brand_id: str, cluster_id: str) -> tuple[Cluster, list[Chunk]]:
    """The cluster and its members (canonical first, then approved, then most used)."""
    cluster = get_cluster_or_raise(repo, brand_id, cluster_id)
    return cluster, repo.cluster_members(brand_id, cluster_id)
