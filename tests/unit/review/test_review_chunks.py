"""Tests for chunk curation (status, lock, canonical flag)."""

from __future__ import annotations

import pytest

from canon.db.models import Chunk, ChunkStatus, Cluster
from canon.errors import ChunkLockedError, NotFoundError, ValidationError
from canon.review import delete_chunk, update_chunk_review


def _chunk(repo, id, **kw):
    return repo.create_chunk(Chunk(brand_id="acme", text=f"Copy {id}.", normalised_text=f"copy {id}.", id=id, **kw))


def test_approve_stamps_actor_and_time(repo):
    _chunk(repo, "a")
    updated = update_chunk_review(repo, "acme", "a", "ana", status=ChunkStatus.APPROVED)
    assert updated.status == ChunkStatus.APPROVED
    assert updated.approved_by == "ana"
    assert updated.approved_at is not None


def test_deprecate_stamps_actor(repo):
    _chunk(repo, "a")
    updated = update_chunk_review(repo, "acme", "a", "ana", status="DEPRECATED")
    assert updated.status == ChunkStatus.DEPRECATED
    assert updated.deprecated_by == "ana"
    assert updated.deprecated_at is not None


def test_metadata_edits(repo):
    _chunk(repo, "a", category="Legal")
    updated = update_chunk_review(
        repo, "acme", "a", category="CTAs", intent="convert", channel="Email", tone_tags=["warm"]
    )
    assert (updated.category, updated.intent, updated.channel) == ("CTAs", "convert", "Email")
    assert updated.tone_tags == ["warm"]
    assert updated.status == ChunkStatus.INFERRED


def test_unknown_status_rejected(repo):
    _chunk(repo, "a")
    with pytest.raises(ValidationError, match="Unknown status"):
        update_chunk_review(repo, "acme", "a", status="PUBLISHED")


def test_missing_chunk(repo):
    with pytest.raises(NotFoundError):
        update_chunk_review(repo, "acme", "nope", locked=True)


def test_wrong_brand_is_missing(repo):
    _chunk(repo, "a")
    with pytest.raises(NotFoundError):
        update_chunk_review(repo, "globex", "a", locked=True)


def test_locked_chunk_keeps_status(repo):
    _chunk(repo, "a", locked=True)
    with pytest.raises(ChunkLockedError, match="Unlock it first"):
        update_chunk_review(repo, "acme", "a", status=ChunkStatus.DEPRECATED)
    assert repo.get_chunk("acme", "a").status == ChunkStatus.INFERRED


def test_locked_chunk_metadata_still_editable(repo):
    _chunk(repo, "a", locked=True)
    assert update_chunk_review(repo, "acme", "a", category="CTAs").category == "CTAs"


def test_unlock_then_change_status(repo):
    _chunk(repo, "a", locked=True)
    update_chunk_review(repo, "acme", "a", locked=False)
    assert update_chunk_review(repo, "acme", "a", status=ChunkStatus.APPROVED).approved


def test_canonical_requires_approval(repo):
    _chunk(repo, "a")
    with pytest.raises(ValidationError, match="approved"):
        update_chunk_review(repo, "acme", "a", canonical=True)


def test_approve_and_canonical_together(repo):
    repo.create_cluster(Cluster(brand_id="acme", id="k1"))
    _chunk(repo, "a", cluster_id="k1", status=ChunkStatus.APPROVED, canonical=True)
    _chunk(repo, "b", cluster_id="k1")
    repo.update_cluster("acme", "k1", canonical_chunk_id="a")

    updated = update_chunk_review(repo, "acme", "b", status=ChunkStatus.APPROVED, canonical=True)
    assert updated.canonical is True
    assert repo.get_chunk("acme", "a").canonical is False
    assert repo.get_cluster("acme", "k1").canonical_chunk_id == "b"


def test_unclustered_chunk_can_be_canonical(repo):
    _chunk(repo, "a", status=ChunkStatus.APPROVED)
    assert update_chunk_review(repo, "acme", "a", canonical=True).canonical is True


def test_deprecating_canonical_clears_cluster(repo):
    repo.create_cluster(Cluster(brand_id="acme", id="k1", canonical_chunk_id="a"))
    _chunk(repo, "a", cluster_id="k1", status=ChunkStatus.APPROVED, canonical=True)
    updated = update_chunk_review(repo, "acme", "a", status=ChunkStatus.DEPRECATED)
    assert updated.canonical is False
    assert repo.get_cluster("acme", "k1").canonical_chunk_id is None


def test_uncanonical_keeps_cluster_canonical_if_other(repo):
    repo.create_cluster(Cluster(brand_id="acme", id="k1", canonical_chunk_id="b"))
    _chunk(repo, "a", cluster_id="k1", status=ChunkStatus.APPROVED, canonical=True)
    _chunk(repo, "b", cluster_id="k1", status=ChunkStatus.APPROVED)
    update_chunk_review(repo, "acme", "a", canonical=False)
    assert repo.get_chunk("acme", "a").canonical is False
    assert repo.get_cluster("acme", "k1").canonical_chunk_id == "b"


# ------------------------------------------------------------------
# delete_chunk
# ------------------------------------------------------------------


def test_delete_chunk(repo):
    _chunk(repo, "a")
    delete_chunk(repo, "acme", "a")
    assert repo.get_chunk("acme", "a") is None


def test_delete_locked_chunk_refused(repo):
    _chunk(repo, "a", locked=True)
    with pytest.raises(ChunkLockedError, match="delete"):
        delete_chunk(repo, "acme", "a")
    assert repo.get_chunk("acme", "a") is not None


def test_delete_canonical_clears_cluster(repo):
    repo.create_cluster(Cluster(brand_id="acme", id="k1", canonical_chunk_id="a"))
    _chunk(repo, "a", cluster_id="k1", status=ChunkStatus.APPROVED, canonical=True)
    delete_chunk(repo, "acme", "a")
    assert repo.get_cluster("acme", "k1").canonical_chunk_id is None


def test_delete_member_updates_variant_count(repo):
    repo.create_cluster(Cluster(brand_id="acme", id="k1", variant_count=2))
    _chunk(repo, "a", cluster_id="k1")
    _chunk(repo, "b", cluster_id="k1")
    delete_chunk(repo, "acme", "a")
    assert repo.get_cluster("acme", "k1").variant_count == 1
    assert [m.id for m in repo.cluster_members("acme", "k1")] == ["b"]


def test_delete_missing(repo):
    with pytest.raises(NotFoundError):
        delete_chunk(repo, "acme", "nope")
