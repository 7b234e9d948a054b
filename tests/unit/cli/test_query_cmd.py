"""Tests for canon query."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from canon.cli.main import app
from canon.db.models import Chunk, ChunkStatus

runner = CliRunner()

_Q = "hero headline"


@pytest.fixture
def embedder(make_embedder):
    fake = make_embedder({_Q: [1.0, 0.0, 0.0]})
    with patch("canon.cli.query.build_embedder", return_value=fake):
        yield fake


def _store(repo, id, vec, **kw):
    repo.create_chunk(Chunk(brand_id="acme", text=f"Copy {id}", normalised_text=f"copy {id}", id=id, embedding=vec, **kw))


def test_query_lists_matches(project, seeded, embedder) -> None:
    _store(seeded, "canon1", [0.8, 0.6, 0.0], status=ChunkStatus.APPROVED, canonical=True)
    _store(seeded, "draft1", [0.95, 0.31224989991991997, 0.0])
    result = runner.invoke(app, ["query", _Q])
    assert result.exit_code == 0, result.output
    assert result.output.index("canon1") < result.output.index("draft1")
    assert "canonical" in result.output
    assert "0.800" in result.output


def test_query_prompt_panel(project, seeded, embedder) -> None:
    _store(seeded, "canon1", [1.0, 0.0, 0.0], status=ChunkStatus.APPROVED, canonical=True)
    result = runner.invoke(app, ["query", _Q, "--prompt"])
    assert result.exit_code == 0, result.output
    assert "Grounding" in result.output
    assert "[1] Copy canon1" in result.output


def test_query_prompt_empty_without_approved(project, seeded, embedder) -> None:
    _store(seeded, "draft1", [1.0, 0.0, 0.0])
    result = runner.invoke(app, ["query", _Q, "--prompt"])
    assert result.exit_code == 0, result.output
    assert "grounding prompt is empty" in result.output


def test_query_no_matches(project, seeded, embedder) -> None:
    result = runner.invoke(app, ["query", _Q])
    assert result.exit_code == 0
    assert "No matching brand language" in result.output


def test_query_record_usage(project, seeded, embedder) -> None:
    _store(seeded, "draft1", [1.0, 0.0, 0.0])
    runner.invoke(app, ["query", _Q, "--record-usage"])
    assert seeded.get_chunk("acme", "draft1").usage_count == 1


def test_query_invalid_limit(project, seeded, embedder) -> None:
    result = runner.invoke(app, ["query", _Q, "--limit", "50"])
    assert result.exit_code == 1
    assert "limit" in result.output
    assert embedder.calls == []


def test_query_without_db(project, embedder) -> None:
    result = runner.invoke(app, ["query", _Q])
    assert result.exit_code == 1
    assert "canon init" in result.output
