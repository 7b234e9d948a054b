"""Similarity detection, clustering and conflict surfacing."""

from canon.match.clusters import ClusterMember, ClusterPlan, build_clusters, select_canonical
from canon.match.conflicts import ConflictCandidate, detect_conflicts
from canon.match.similarity import (
    SimilarityMatches,
    SimilarityThresholds,
    SimilarMatch,
    cosine_similarity,
    find_similar,
)

__all__ = [
    "ClusterMember",
    "ClusterPlan",
    "ConflictCandidate",
    "SimilarMatch",
    "SimilarityMatches",
    "SimilarityThresholds",
    "build_clusters",
    "cosine_similarity",
    "detect_conflicts",
    "find_similar",
    "select_canonical",
]
