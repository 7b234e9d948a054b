"""Tests for the Repository pattern."""

from __future__ import annotations

import pytest

from canon.db.models import Chunk, ChunkSource, ChunkStatus, Cluster, Conflict, ConflictSeverity
from canon.db.repository import ChunkFilter


def _chunk(text="Build faster with fewer meetings.", brand="acme", **kw):
    return Chunk(brand_id=brand, text=text, normalised_text=text.lower(), **kw)


# ------------------------------------------------------------------
# Chunks
# ------------------------------------------------------------------

def test_create_chunk_assigns_id_and_created_at(repo):
    chunk = repo.create_chunk(_chunk())
    assert chunk.id
    assert chunk.created_at is not None
    assert chunk.status == ChunkStatus.INFERRED


def test_create_chunk_keeps_explicit_id(repo):
    chunk = repo.create_chunk(_chunk(id="c-1"))
    assert chunk.id == "c-1"


def test_embedding_round_trips_as_float32(repo):
    chunk = repo.create_chunk(_chunk(embedding=[1.0, 0.5, -0.25]))
    assert chunk.embedding == [1.0, 0.5, -0.25]


def test_missing_embedding_reads_back_as_none(repo):
    assert repo.create_chunk(_chunk()).embedding is None


def test_tone_tags_and_metadata_persist(repo):
    chunk = repo.create_chunk(
        _chunk(tone_tags=["bold", "warm"], metadata='{"heading": "Hero"}')
    )
    assert chunk.tone_tags == ["bold", "warm"]
    assert chunk.metadata_dict == {"heading": "Hero"}


def test_get_chunk_is_brand_scoped(repo):
    chunk = repo.create_chunk(_chunk(brand="acme"))
    assert repo.get_chunk("acme", chunk.id) is not None
    assert repo.get_chunk("globex", chunk.id) is None


def test_find_chunks_excludes_statuses(repo):
    repo.create_chunk(_chunk(id="a", status=ChunkStatus.APPROVED))
    repo.create_chunk(_chunk(id="b", status=ChunkStatus.DEPRECATED))
    repo.create_chunk(_chunk(id="c"))
    found = repo.find_chunks("acme", ChunkFilter(exclude_statuses=[ChunkStatus.DEPRECATED]))
    assert sorted(c.id for c in found) == ["a", "c"]


def test_find_chunks_filters(repo):
    repo.create_chunk(_chunk(id="a", category="CTAs", channel="Web"))
    repo.create_chunk(_chunk(id="b", category="Legal", channel="Web"))
    repo.create_chunk(_chunk(id="c", category="CTAs", channel="Email", source=ChunkSource.WEBSITE_CRAWL))
    assert [c.id for c in repo.find_chunks("acme", ChunkFilter(category="CTAs", channel="Web"))] == ["a"]
    assert [c.id for c in repo.find_chunks("acme", ChunkFilter(source=ChunkSource.WEBSITE_CRAWL))] == ["c"]


def test_find_chunks_search_is_case_insensitive(repo):
    repo.create_chunk(_chunk(id="a", text="Start your FREE trial today and save."))
    repo.create_chunk(_chunk(id="b", text="Read the privacy notice before signing up."))
    found = repo.find_chunks("acme", ChunkFilter(search="free trial"))
    assert [c.id for c in found] == ["a"]


def test_find_chunks_never_spans_brands(repo):
    repo.create_chunk(_chunk(id="a", brand="acme"))
    repo.create_chunk(_chunk(id="b", brand="globex"))
    assert [c.id for c in repo.find_chunks("globex")] == ["b"]


def test_find_chunks_order_by_usage_then_id(repo):
    repo.create_chunk(_chunk(id="b", usage_count=5))
    repo.create_chunk(_chunk(id="a", usage_count=5))
    repo.create_chunk(_chunk(id="c", usage_count=9))
    found = repo.find_chunks("acme", order_by="usage_count", descending=True)
    assert [c.id for c in found] == ["c", "a", "b"]


def test_find_chunks_limit_and_offset(repo):
    for i in range(5):
        repo.create_chunk(_chunk(id=f"c{i}", usage_count=i))
    page = repo.find_chunks("acme", limit=2, offset=1, order_by="usage_count")
    assert [c.id for c in page] == ["c1", "c2"]


def test_find_chunks_rejects_unknown_order(repo):
    with pytest.raises(ValueError, match="order_by"):
        repo.find_chunks("acme", order_by="text; DROP TABLE chunks")


def test_count_chunks(repo):
    repo.create_chunk(_chunk(id="a", status=ChunkStatus.APPROVED))
    repo.create_chunk(_chunk(id="b"))
    assert repo.count_chunks("acme") == 2
    assert repo.count_chunks("acme", ChunkFilter(status=ChunkStatus.APPROVED)) == 1


def test_update_chunk(repo):
    chunk = repo.create_chunk(_chunk())
    assert repo.update_chunk("acme", chunk.id, status=ChunkStatus.APPROVED, canonical=True, tone_tags=["calm"])
    updated = repo.get_chunk("acme", chunk.id)
    assert updated.status == ChunkStatus.APPROVED
    assert updated.canonical is True
    assert updated.tone_tags == ["calm"]


def test_update_chunk_missing_returns_false(repo):
    assert repo.update_chunk("acme", "nope", locked=True) is False


def test_update_chunk_rejects_immutable_columns(repo):
    chunk = repo.create_chunk(_chunk())
    with pytest.raises(ValueError, match="brand_id"):
        repo.update_chunk("acme", chunk.id, brand_id="globex")
    with pytest.raises(ValueError, match="chunk_id"):
        repo.update_chunk("acme", chunk.id, chunk_id="other")
    assert repo.get_chunk("acme", chunk.id).brand_id == "acme"


def test_delete_chunk(repo):
    chunk = repo.create_chunk(_chunk())
    assert repo.delete_chunk("acme", chunk.id) is True
    assert repo.get_chunk("acme", chunk.id) is None
    assert repo.delete_chunk("acme", chunk.id) is False


def test_record_usage(repo):
    a = repo.create_chunk(_chunk(id="a"))
    repo.create_chunk(_chunk(id="b"))
    assert repo.record_usage("acme", [a.id]) == 1
    updated = repo.get_chunk("acme", "a")
    assert updated.usage_count == 1
    assert updated.last_used_at is not None
    assert repo.get_chunk("acme", "b").usage_count == 0


def test_record_usage_empty_list(repo):
    assert repo.record_usage("acme", []) == 0


# ------------------------------------------------------------------
# Clusters
# ------------------------------------------------------------------

def test_create_and_get_cluster(repo):
    cluster = repo.create_cluster(Cluster(brand_id="acme", variant_count=2))
    assert cluster.id
    assert repo.get_cluster("acme", cluster.id).variant_count == 2
    assert repo.get_cluster("globex", cluster.id) is None


def test_list_clusters_largest_first(repo):
    repo.create_cluster(Cluster(brand_id="acme", id="small", variant_count=2))
    repo.create_cluster(Cluster(brand_id="acme", id="big", variant_count=7))
    assert [c.id for c in repo.list_clusters("acme")] == ["big", "small"]


def test_update_cluster(repo):
    cluster = repo.create_cluster(Cluster(brand_id="acme"))
    assert repo.update_cluster("acme", cluster.id, concept_summary="Free trial CTA")
    assert repo.get_cluster("acme", cluster.id).concept_summary == "Free trial CTA"


def test_update_cluster_rejects_brand_change(repo):
    cluster = repo.create_cluster(Cluster(brand_id="acme"))
    with pytest.raises(ValueError, match="brand_id"):
        repo.update_cluster("acme", cluster.id, brand_id="globex")
    with pytest.raises(ValueError, match="brand_id"):
        repo.update_chunks_by_cluster("acme", cluster.id, brand_id="globex")


def test_assign_cluster_and_members(repo):
    cluster = repo.create_cluster(Cluster(brand_id="acme", id="k1"))
    repo.create_chunk(_chunk(id="a", usage_count=1))
    repo.create_chunk(_chunk(id="b", status=ChunkStatus.APPROVED))
    repo.create_chunk(_chunk(id="c"))
    assert repo.assign_cluster("acme", cluster.id, ["a", "b"]) == 2
    members = repo.cluster_members("acme", "k1")
    assert [m.id for m in members] == ["b", "a"]


def test_update_chunks_by_cluster(repo):
    repo.create_cluster(Cluster(brand_id="acme", id="k1"))
    repo.create_chunk(_chunk(id="a", cluster_id="k1", canonical=True))
    repo.create_chunk(_chunk(id="b", cluster_id="k1"))
    assert repo.update_chunks_by_cluster("acme", "k1", canonical=False) == 2
    assert not any(m.canonical for m in repo.cluster_members("acme", "k1"))


def test_set_cluster_canonical_moves_flag(repo):
    repo.create_cluster(Cluster(brand_id="acme", id="k1"))
    repo.create_chunk(_chunk(id="a", cluster_id="k1", canonical=True, status=ChunkStatus.APPROVED))
    repo.create_chunk(_chunk(id="b", cluster_id="k1", status=ChunkStatus.APPROVED))
    repo.set_cluster_canonical("acme", "k1", "b")
    assert repo.get_chunk("acme", "a").canonical is False
    assert repo.get_chunk("acme", "b").canonical is True
    assert repo.get_cluster("acme", "k1").canonical_chunk_id == "b"


def test_set_cluster_canonical_none_clears(repo):
    repo.create_cluster(Cluster(brand_id="acme", id="k1", canonical_chunk_id="a"))
    repo.create_chunk(_chunk(id="a", cluster_id="k1", canonical=True))
    repo.set_cluster_canonical("acme", "k1", None)
    assert repo.get_chunk("acme", "a").canonical is False
    assert repo.get_cluster("acme", "k1").canonical_chunk_id is None


# ------------------------------------------------------------------
# Conflicts
# ------------------------------------------------------------------

def _conflict(**kw):
    defaults = dict(brand_id="acme", cluster_id="k1", chunk_id_1="a", chunk_id_2="b")
    defaults.update(kw)
    return Conflict(**defaults)


def test_create_and_get_conflict(repo):
    conflict = repo.create_conflict(_conflict(description="Two approved CTAs disagree"))
    stored = repo.get_conflict("acme", conflict.id)
    assert stored.severity == ConflictSeverity.MEDIUM
    assert stored.resolved is False
    assert stored.description == "Two approved CTAs disagree"


def test_list_conflicts_filters_and_orders(repo):
    repo.create_conflict(_conflict(id="low", severity=ConflictSeverity.LOW))
    repo.create_conflict(_conflict(id="high", severity=ConflictSeverity.HIGH))
    repo.create_conflict(_conflict(id="done", resolved=True, cluster_id="k2"))
    assert [c.id for c in repo.list_conflicts("acme", resolved=False)] == ["high", "low"]
    assert [c.id for c in repo.list_conflicts("acme", cluster_id="k2")] == ["done"]
    assert len(repo.list_conflicts("acme")) == 3


def test_update_conflict(repo):
    conflict = repo.create_conflict(_conflict())
    assert repo.update_conflict("acme", conflict.id, resolved=True, resolved_by="ana")
    stored = repo.get_conflict("acme", conflict.id)
    assert stored.resolved is True
    assert stored.resolved_by == "ana"


def test_update_conflict_rejects_unknown_columns(repo):
    conflict = repo.create_conflict(_conflict())
    with pytest.raises(ValueError):
        repo.update_conflict("acme", conflict.id, chunk_id_1="z")
    with pytest.raises(ValueError, match="brand_id"):
        repo.update_conflict("acme", conflict.id, brand_id="globex")
