"""Conflict surfacing within a cluster.

Two APPROVED members of one cluster that say the same thing in different
words are flagged: reviewers approved both, so neither can be assumed to be
the preferred phrasing. Exact rewordings above the duplicate threshold are
not conflicts.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from canon.db.models import ChunkStatus, ConflictSeverity
from canon.match.clusters import ClusterMember
from canon.match.similarity import cosine_similarity


@dataclass(frozen=True)
class ConflictCandidate:
    chunk_id_1: str
    chunk_id_2: str
    similarity: float
    severity: ConflictSeverity = ConflictSeverity.MEDIUM

    @property
    def description(self) -> str:
        return (
            f"Approved variants diverge (similarity {self.similarity:.2f}); "
            "choose one as canonical or deprecate the other."
        )


def detect_conflicts(
    members: Sequence[ClusterMember],
    duplicate_threshold: float = 0.92,
) -> list[ConflictCandidate]:
    """Return conflicting pairs among the APPROVED *members*, in id order."""
    approved = sorted(
        (m for m in members if m.status == ChunkStatus.APPROVED), key=lambda m: m.id
    )
    conflicts: list[ConflictCandidate] = []
    for i, a in enumerate(approved):
        for b in approved[i + 1 :]:
            if a.normalised_text and a.normalised_text == b.normalised_text:
                continue
            similarity = cosine_similarity(a.embedding, b.embedding)
            if similarity < duplicate_threshold:
                conflicts.append(
                    ConflictCandidate(chunk_id_1=a.id, chunk_id_2=b.id, similarity=similarity)
                )
    return conflicts
