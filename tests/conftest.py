"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from canon.db.connection import Database
from canon.db.repository import Repository
from canon.db.schema import initialize
from canon.ingest.classifier import BrandContext, ClassificationResult


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".canon.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def repo(tmp_db):
    return Repository(tmp_db)


class FakeEmbedder:
    """Looks vectors up by exact text; unknown texts get *default*."""

    def __init__(self, vectors=None, default=(0.0, 0.0, 1.0), dimensions=3):
        self.vectors = dict(vectors or {})
        self.default = list(default)
        self.dimensions = dimensions
        self.calls: list[list[str]] = []

    def embed(self, text):
        return self.embed_many([text])[0]

    def embed_many(self, texts):
        self.calls.append(list(texts))
        return [list(self.vectors.get(t, self.default)) for t in texts]


class FakeClassifier:
    """Returns a fixed classification; texts in *fail_on* raise."""

    def __init__(self, category="Marketing copy", confidence=0.8, fail_on=()):
        self.category = category
        self.confidence = confidence
        self.fail_on = set(fail_on)
        self.calls: list[tuple[str, BrandContext | None]] = []

    def classify(self, text, context=None):
        self.calls.append((text, context))
        if text in self.fail_on:
            raise RuntimeError("classifier down")
        return ClassificationResult(
            category=self.category,
            channel="Web",
            intent="persuade",
            tone_tags=["confident"],
            confidence_score=self.confidence,
        )


@pytest.fixture
def make_embedder():
    return FakeEmbedder


@pytest.fixture
def make_classifier():
    return FakeClassifier
