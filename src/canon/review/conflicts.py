"""Conflict review: record divergent phrasings and mark them resolved."""

from __future__ import annotations

from canon.db.models import Conflict, ConflictSeverity
from canon.db.repository import Repository, utcnow
from canon.errors import NotFoundError, ValidationError


def resolve_conflict(
    repo: Repository,
    brand_id: str,
    conflict_id: str,
    actor: str | None = None,
    resolved: bool = True,
) -> Conflict:
    """Mark a conflict resolved (stamping resolver and time) or reopen it.

    Resolving an already-resolved conflict is a no-op. Reopening clears the
    resolver fields.
    """
    conflict = repo.get_conflict(brand_id, conflict_id)
    if conflict is None:
        raise NotFoundError("Conflict", conflict_id)
    if conflict.resolved == resolved:
        return conflict

    if resolved:
        repo.update_conflict(
            brand_id, conflict_id, resolved=True, resolved_by=actor, resolved_at=utcnow()
        )
    else:
        repo.update_conflict(
            brand_id, conflict_id, resolved=False, resolved_by=None, resolved_at=None
        )
    updated = repo.get_conflict(brand_id, conflict_id)
    assert updated is not None
    return updated


def flag_conflict(
    repo: Repository,
    brand_id: str,
    cluster_id: str,
    chunk_id_1: str,
    chunk_id_2: str,
    description: str,
    severity: ConflictSeverity | str = ConflictSeverity.MEDIUM,
) -> Conflict:
    """Record a conflict between two members of *cluster_id*.

    Raises:
        NotFoundError: Unknown cluster or chunk.
        ValidationError: Same chunk twice, a chunk outside the cluster, or an
            unknown severity.
    """
    if repo.get_cluster(brand_id, cluster_id) is None:
        raise NotFoundError("Cluster", cluster_id)
    if chunk_id_1 == chunk_id_2:
        raise ValidationError("A conflict needs two different chunks")
    try:
        level = ConflictSeverity(severity)
    except ValueError:
        allowed = ", ".join(s.value for s in ConflictSeverity)
        raise ValidationError(f"Unknown severity {severity!r}. Use one of: {allowed}") from None

    for chunk_id in (chunk_id_1, chunk_id_2):
        chunk = repo.get_chunk(brand_id, chunk_id)
        if chunk is None:
            raise NotFoundError("Chunk", chunk_id)
        if chunk.cluster_id != cluster_id:
            raise ValidationError(f"Chunk '{chunk_id}' is not a member of cluster '{cluster_id}'")

    return repo.create_conflict(
        Conflict(
            brand_id=brand_id,
            cluster_id=cluster_id,
            chunk_id_1=chunk_id_1,
            chunk_id_2=chunk_id_2,
            severity=level,
            description=description,
        )
    )
