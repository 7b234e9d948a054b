"""Tests for canon init."""

from __future__ import annotations

from pathlib import Path

import yaml
from typer.testing import CliRunner

from canon.cli.main import app
from canon.db.connection import Database

runner = CliRunner()


def test_init_creates_db_and_config(tmp_path: Path) -> None:
    result = runner.invoke(app, ["init", str(tmp_path), "--brand-name", "Acme"])
    assert result.exit_code == 0, result.output
    assert (tmp_path / ".canon.db").exists()
    cfg = yaml.safe_load((tmp_path / "canon.yaml").read_text(encoding="utf-8"))
    assert cfg["brand"]["name"] == "Acme"
    assert "Canon project initialized" in result.output


def test_init_creates_schema(tmp_path: Path) -> None:
    runner.invoke(app, ["init", str(tmp_path)])
    conn = Database(tmp_path / ".canon.db").connect()
    tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    conn.close()
    assert {"chunks", "clusters", "conflicts"} <= tables


def test_init_is_idempotent(tmp_path: Path) -> None:
    runner.invoke(app, ["init", str(tmp_path), "--brand-name", "Acme"])
    result = runner.invoke(app, ["init", str(tmp_path), "--brand-name", "Other"])
    assert result.exit_code == 0
    assert "already exists" in result.output
    cfg = yaml.safe_load((tmp_path / "canon.yaml").read_text(encoding="utf-8"))
    assert cfg["brand"]["name"] == "Acme"


def test_init_updates_existing_gitignore(tmp_path: Path) -> None:
    (tmp_path / ".gitignore").write_text("node_modules/\n", encoding="utf-8")
    runner.invoke(app, ["init", str(tmp_path)])
    lines = (tmp_path / ".gitignore").read_text(encoding="utf-8").splitlines()
    assert ".canon.db" in lines
    assert ".canon.db-wal" in lines
    assert lines[0] == "node_modules/"


def test_init_does_not_create_gitignore(tmp_path: Path) -> None:
    runner.invoke(app, ["init", str(tmp_path)])
    assert not (tmp_path / ".gitignore").exists()
