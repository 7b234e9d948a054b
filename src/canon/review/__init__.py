"""Reviewer operations over stored chunks, clusters and conflicts."""

from canon.review.chunks import delete_chunk, update_chunk_review
from canon.review.clusters import cluster_detail, set_cluster_canonical, update_cluster_summary
from canon.review.conflicts import flag_conflict, resolve_conflict

__all__ = [
    "cluster_detail",
    "delete_chunk",
    "flag_conflict",
    "resolve_conflict",
    "set_cluster_canonical",
    "update_chunk_review",
    "update_cluster_summary",
]
