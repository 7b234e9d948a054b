"""Tests for grounding prompt assembly."""

from __future__ import annotations

import pytest

from canon.db.models import Chunk, ChunkStatus
from canon.rag.grounding import GroundingContext, build_prompt_addition, prepare_grounding
from canon.rag.query import QueryOptions, RankedChunk

_Q = "write a hero headline"
_X = [1.0, 0.0, 0.0]
_CLOSE = [0.95, 0.31224989991991997, 0.0]

_INSTRUCTIONS = (
    "Instructions:\n"
    "- Reuse existing phrasing where appropriate\n"
    "- Maintain consistency with canonical language\n"
    "- Only introduce new phrasing if necessary\n"
    "- Prefer approved copy over inferred\n"
)


def _ranked(id, text, status=ChunkStatus.INFERRED, canonical=False, similarity=0.9):
    chunk = Chunk(brand_id="acme", text=text, normalised_text=text.lower(), id=id, status=status, canonical=canonical)
    return RankedChunk(chunk=chunk, similarity=similarity)


# ------------------------------------------------------------------
# build_prompt_addition
# ------------------------------------------------------------------


def test_prompt_with_canonical_and_alternatives():
    ranked = [
        _ranked("a", "Build faster.", ChunkStatus.APPROVED, canonical=True),
        _ranked("b", "Ship sooner.", ChunkStatus.APPROVED),
        _ranked("c", "Go quicker.", ChunkStatus.INFERRED),
    ]
    assert build_prompt_addition(ranked) == (
        "Approved brand language examples (preferred phrasing):\n"
        "[1] Build faster.\n"
        "\n"
        "Approved alternatives (acceptable but not primary):\n"
        "[Alt 1] Ship sooner.\n"
        "\n" + _INSTRUCTIONS
    )


def test_at_most_three_alternatives():
    ranked = [_ranked(f"c{i}", f"Alt copy {i}.", ChunkStatus.APPROVED) for i in range(5)]
    prompt = build_prompt_addition(ranked)
    assert "[Alt 3] Alt copy 2." in prompt
    assert "[Alt 4]" not in prompt
    assert "preferred phrasing" not in prompt


def test_only_inferred_gives_empty_prompt():
    assert build_prompt_addition([_ranked("a", "Unreviewed copy.")]) == ""
    assert build_prompt_addition([]) == ""


def test_canonical_but_unapproved_is_not_quoted():
    # The canonical flag alone never promotes copy into the prompt.
    ranked = [_ranked("a", "Stale copy.", ChunkStatus.DEPRECATED, canonical=True)]
    assert build_prompt_addition(ranked) == ""


# ------------------------------------------------------------------
# prepare_grounding
# ------------------------------------------------------------------


def _store(repo, id, vec, **kw):
    repo.create_chunk(Chunk(brand_id="acme", text=f"Copy {id}.", normalised_text=f"copy {id}.", id=id, embedding=vec, **kw))


def test_prepare_grounding_returns_chunks_and_prompt(repo, make_embedder):
    _store(repo, "canon", _CLOSE, status=ChunkStatus.APPROVED, canonical=True)
    _store(repo, "draft", _X)
    result = prepare_grounding(repo, make_embedder({_Q: _X}), "acme", _Q)

    assert [c.id for c in result.chunks] == ["canon", "draft"]
    first = result.chunks[0]
    assert first.is_canonical and first.is_approved
    assert first.similarity == pytest.approx(0.95, abs=1e-6)
    assert "[1] Copy canon." in result.prompt_addition
    assert "Copy draft." not in result.prompt_addition


def test_context_filters_override_options(repo, make_embedder):
    _store(repo, "cta", _X, category="CTAs", status=ChunkStatus.APPROVED)
    _store(repo, "legal", _X, category="Legal", status=ChunkStatus.APPROVED)
    result = prepare_grounding(
        repo, make_embedder({_Q: _X}), "acme", _Q,
        context=GroundingContext(category="CTAs"),
        options=QueryOptions(category="Legal", limit=1),
    )
    assert [c.id for c in result.chunks] == ["cta"]


def test_record_usage_is_opt_in(repo, make_embedder):
    _store(repo, "a", _X)
    embedder = make_embedder({_Q: _X})
    prepare_grounding(repo, embedder, "acme", _Q)
    assert repo.get_chunk("acme", "a").usage_count == 0
    prepare_grounding(repo, embedder, "acme", _Q, record_usage=True)
    stored = repo.get_chunk("acme", "a")
    assert stored.usage_count == 1
    assert stored.last_used_at is not None


def test_no_matches(repo, make_embedder):
    result = prepare_grounding(repo, make_embedder(), "acme", _Q)
    assert result.chunks == []
    assert result.prompt_addition == ""
