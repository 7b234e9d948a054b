"""Curation of individual chunks: status, metadata, lock and canonical flag."""

from __future__ import annotations

from canon.db.models import Chunk, ChunkStatus
from canon.db.repository import Repository, utcnow
from canon.errors import ChunkLockedError, NotFoundError, ValidationError


def get_chunk_or_raise(repo: Repository, brand_id: str, chunk_id: str) -> Chunk:
    chunk = repo.get_chunk(brand_id, chunk_id)
    if chunk is None:
        raise NotFoundError("Chunk", chunk_id)
    return chunk


def update_chunk_review(
    repo: Repository,
    brand_id: str,
    chunk_id: str,
    actor: str | None = None,
    *,
    status: ChunkStatus | str | None = None,
    category: str | None = None,
    intent: str | None = None,
    channel: str | None = None,
    tone_tags: list[str] | None = None,
    locked: bool | None = None,
    canonical: bool | None = None,
) -> Chunk:
    """Apply a reviewer's edits to one chunk and return it as stored.

    ``None`` means "leave unchanged" for every keyword.

    - APPROVED stamps approved_by / approved_at with *actor* and now.
    - DEPRECATED stamps deprecated_by / deprecated_at and drops the canonical flag.
    - canonical=True requires the chunk to be APPROVED (after this update) and
      clears the flag on every other member of its cluster.

    Raises:
        NotFoundError: No such chunk in *brand_id*.
        ChunkLockedError: Status change requested on a locked chunk.
        ValidationError: Unknown status, or canonical on a non-approved chunk.
    """
    chunk = get_chunk_or_raise(repo, brand_id, chunk_id)

    fields: dict = {}
    new_status = chunk.status
    if status is not None:
        try:
            new_status = ChunkStatus(status)
        except ValueError:
            allowed = ", ".join(s.value for s in ChunkStatus)
            raise ValidationError(f"Unknown status {status!r}. Use one of: {allowed}") from None
        if chunk.locked:
            raise ChunkLockedError(chunk_id, "change the status of")
        fields["status"] = new_status
        if new_status == ChunkStatus.APPROVED:
            fields["approved_by"] = actor
            fields["approved_at"] = utcnow()
        elif new_status == ChunkStatus.DEPRECATED:
            fields["deprecated_by"] = actor
            fields["deprecated_at"] = utcnow()

    if canonical and new_status != ChunkStatus.APPROVED:
        raise ValidationError("Only approved chunks can be canonical")

    if category is not None:
        fields["category"] = category
    if intent is not None:
        fields["intent"] = intent
    if channel is not None:
        fields["channel"] = channel
    if tone_tags is not None:
        fields["tone_tags"] = list(tone_tags)
    if locked is not None:
        fields["locked"] = locked

    # A chunk that stops being approved cannot stay canonical.
    if chunk.canonical and new_status != ChunkStatus.APPROVED:
        canonical = False

    repo.update_chunk(brand_id, chunk_id, **fields)
    if canonical is not None and canonical != chunk.canonical:
        _apply_canonical(repo, chunk, canonical)

    updated = repo.get_chunk(brand_id, chunk_id)
    assert updated is not None
    return updated


def delete_chunk(repo: Repository, brand_id: str, chunk_id: str) -> None:
    """Delete a chunk. Locked chunks must be unlocked first.

    A deleted canonical chunk leaves its cluster without a canonical; the
    cluster's variant count follows its remaining members.
    """
    chunk = get_chunk_or_raise(repo, brand_id, chunk_id)
    if chunk.locked:
        raise ChunkLockedError(chunk_id, "delete")
    if chunk.canonical and chunk.cluster_id:
        repo.set_cluster_canonical(brand_id, chunk.cluster_id, None)
    repo.delete_chunk(brand_id, chunk_id)
    if chunk.cluster_id:
        remaining = len(repo.cluster_members(brand_id, chunk.cluster_id))
        repo.update_cluster(brand_id, chunk.cluster_id, variant_count=remaining)


def _apply_canonical(repo: Repository, chunk: Chunk, canonical: bool) -> None:
    if chunk.cluster_id is None:
        repo.update_chunk(chunk.brand_id, chunk.id, canonical=canonical)
        return
    if canonical:
        repo.set_cluster_canonical(chunk.brand_id, chunk.cluster_id, chunk.id)
        return
    cluster = repo.get_cluster(chunk.brand_id, chunk.cluster_id)
    if cluster is not None and cluster.canonical_chunk_id == chunk.id:
        repo.set_cluster_canonical(chunk.brand_id, chunk.cluster_id, None)
    else:
        repo.update_chunk(chunk.brand_id, chunk.id, canonical=False)
