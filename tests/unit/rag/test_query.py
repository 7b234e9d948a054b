"""Tests for similarity query ranking."""

from __future__ import annotations

import pytest

from canon.db.models import Chunk, ChunkStatus
from canon.errors import ValidationError
from canon.rag.query import QueryOptions, query_similar

_Q = "start your free trial"
_X = [1.0, 0.0, 0.0]
_HIGH = [0.95, 0.31224989991991997, 0.0]   # 0.95
_LOW = [0.8, 0.6, 0.0]                      # 0.80
_OFF = [0.0, 1.0, 0.0]


def _store(repo, id, vec, **kw):
    return repo.create_chunk(
        Chunk(brand_id=kw.pop("brand", "acme"), text=f"text {id}", normalised_text=f"text {id}", id=id, embedding=vec, **kw)
    )


@pytest.fixture
def embedder(make_embedder):
    return make_embedder({_Q: _X})


def test_canonical_outranks_more_similar_inferred(repo, embedder):
    _store(repo, "inferred", _HIGH)
    _store(repo, "canon", _LOW, status=ChunkStatus.APPROVED, canonical=True)
    results = query_similar(repo, embedder, "acme", _Q)
    assert [r.chunk.id for r in results] == ["canon", "inferred"]
    assert results[0].similarity == pytest.approx(0.8, abs=1e-6)


def test_approved_outranks_inferred(repo, embedder):
    _store(repo, "inferred", _HIGH, usage_count=10)
    _store(repo, "approved", _LOW, status=ChunkStatus.APPROVED)
    assert [r.chunk.id for r in query_similar(repo, embedder, "acme", _Q)] == ["approved", "inferred"]


def test_usage_then_similarity(repo, embedder):
    _store(repo, "a", _LOW, usage_count=3)
    _store(repo, "b", _HIGH, usage_count=1)
    _store(repo, "c", _X, usage_count=1)
    assert [r.chunk.id for r in query_similar(repo, embedder, "acme", _Q)] == ["a", "c", "b"]


def test_preferences_can_be_switched_off(repo, embedder):
    _store(repo, "inferred", _HIGH)
    _store(repo, "canon", _LOW, status=ChunkStatus.APPROVED, canonical=True)
    opts = QueryOptions(prefer_canonical=False, prefer_approved=False)
    assert [r.chunk.id for r in query_similar(repo, embedder, "acme", _Q, opts)] == ["inferred", "canon"]


def test_min_similarity_floor(repo, embedder):
    _store(repo, "close", _HIGH)
    _store(repo, "far", _OFF, status=ChunkStatus.APPROVED, canonical=True)
    assert [r.chunk.id for r in query_similar(repo, embedder, "acme", _Q)] == ["close"]
    assert query_similar(repo, embedder, "acme", _Q, QueryOptions(min_similarity=0.99)) == []


def test_deprecated_and_other_brands_excluded(repo, embedder):
    _store(repo, "old", _X, status=ChunkStatus.DEPRECATED)
    _store(repo, "other", _X, brand="globex")
    _store(repo, "mine", _HIGH)
    assert [r.chunk.id for r in query_similar(repo, embedder, "acme", _Q)] == ["mine"]


def test_filters_apply(repo, embedder):
    _store(repo, "cta", _HIGH, category="CTAs", channel="Web")
    _store(repo, "legal", _HIGH, category="Legal", channel="Web")
    results = query_similar(repo, embedder, "acme", _Q, QueryOptions(category="CTAs"))
    assert [r.chunk.id for r in results] == ["cta"]


def test_limit(repo, embedder):
    for i in range(8):
        _store(repo, f"c{i}", _HIGH)
    assert len(query_similar(repo, embedder, "acme", _Q, QueryOptions(limit=3))) == 3


def test_chunks_without_embeddings_skipped(repo, embedder):
    _store(repo, "bare", None)
    assert query_similar(repo, embedder, "acme", _Q) == []


@pytest.mark.parametrize(
    "query,opts",
    [
        ("", QueryOptions()),
        ("   ", QueryOptions()),
        (_Q, QueryOptions(limit=0)),
        (_Q, QueryOptions(limit=21)),
        (_Q, QueryOptions(min_similarity=1.5)),
        (_Q, QueryOptions(min_similarity=-0.1)),
    ],
)
def test_invalid_input_rejected_before_embedding(repo, embedder, query, opts):
    with pytest.raises(ValidationError):
        query_similar(repo, embedder, "acme", query, opts)
    assert embedder.calls == []
