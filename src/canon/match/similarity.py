"""Cosine similarity and three-tier duplicate detection.

Tiers (defaults):
  duplicate       similarity >= 0.92
  near-duplicate  0.85 <= similarity < 0.92
  related         0.75 <= similarity < 0.85

Each candidate lands in the highest tier it qualifies for; candidates below
the related threshold are omitted.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from canon.errors import DimensionMismatchError


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Standard cosine similarity of *a* and *b*.

    Returns 0.0 when either vector has zero norm.

    Raises:
        DimensionMismatchError: If the vectors differ in length.
    """
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))

    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y

    denominator = math.sqrt(norm_a) * math.sqrt(norm_b)
    if denominator == 0:
        return 0.0
    return dot / denominator


@dataclass(frozen=True)
class SimilarityThresholds:
    """Lower bounds (inclusive) of the duplicate / near-duplicate / related tiers."""

    duplicate: float = 0.92
    near_duplicate: float = 0.85
    related: float = 0.75

    def __post_init__(self) -> None:
        for name in ("duplicate", "near_duplicate", "related"):
            value = getattr(self, name)
            if not -1.0 <= value <= 1.0:
                raise ValueError(f"{name} threshold must be in [-1, 1], got {value}")
        if not self.related <= self.near_duplicate <= self.duplicate:
            raise ValueError(
                "thresholds must satisfy related <= near_duplicate <= duplicate "
                f"(got {self.related}, {self.near_duplicate}, {self.duplicate})"
            )


@dataclass(frozen=True)
class SimilarMatch:
    id: str
    similarity: float


@dataclass
class SimilarityMatches:
    """Disjoint tiers, each sorted by similarity descending."""

    duplicates: list[SimilarMatch] = field(default_factory=list)
    near_duplicates: list[SimilarMatch] = field(default_factory=list)
    related: list[SimilarMatch] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.duplicates) + len(self.near_duplicates) + len(self.related)


def find_similar(
    query: Sequence[float],
    candidates: Iterable,
    thresholds: SimilarityThresholds | None = None,
) -> SimilarityMatches:
    """Bucket *candidates* by similarity to *query*.

    Args:
        query: The vector to compare against.
        candidates: ``(id, embedding)`` pairs, or objects with ``id`` and
            ``embedding`` attributes (e.g. stored Chunks). Candidates without
            an embedding are skipped.
        thresholds: Tier boundaries; defaults to 0.92 / 0.85 / 0.75.

    Raises:
        DimensionMismatchError: If a candidate's length differs from *query*.
    """
    t = thresholds or SimilarityThresholds()
    matches = SimilarityMatches()

    for candidate in candidates:
        candidate_id, embedding = _unpack(candidate)
        if embedding is None:
            continue
        similarity = cosine_similarity(query, embedding)
        match = SimilarMatch(id=candidate_id, similarity=similarity)
        if similarity >= t.duplicate:
            matches.duplicates.append(match)
        elif similarity >= t.near_duplicate:
            matches.near_duplicates.append(match)
        elif similarity >= t.related:
            matches.related.append(match)

    for tier in (matches.duplicates, matches.near_duplicates, matches.related):
        tier.sort(key=lambda m: (-m.similarity, m.id))
    return matches


def _unpack(candidate) -> tuple[str, Sequence[float] | None]:
    if isinstance(candidate, tuple):
        return candidate[0], candidate[1]
    return candidate.id, candidate.embedding
