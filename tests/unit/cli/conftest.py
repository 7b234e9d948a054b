"""Fixtures for CLI tests: an isolated project directory with canon.yaml."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from canon.db.connection import Database
from canon.db.repository import Repository
from canon.db.schema import initialize


@pytest.fixture
def project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """CWD = tmp_path, no global config, brand 'acme', short chunks allowed."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("canon.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global" / "config.yaml")
    monkeypatch.delenv("CANON_EMBEDDING_MODEL", raising=False)
    monkeypatch.delenv("CANON_CLASSIFIER_MODEL", raising=False)
    (tmp_path / "canon.yaml").write_text(
        yaml.dump({"brand": {"name": "acme"}, "chunking": {"min_chunk_size": 5}}),
        encoding="utf-8",
    )
    return tmp_path


@pytest.fixture
def db_path(project: Path) -> Path:
    return project / ".canon.db"


@pytest.fixture
def seeded(db_path: Path):
    """Yield a Repository on an initialized db_path; closed after the test."""
    conn = Database(db_path).connect()
    initialize(conn)
    yield Repository(conn)
    conn.close()
