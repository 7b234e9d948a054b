"""Helpers shared by canon CLI commands: database, config, brand, models."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import typer
from rich.console import Console

from canon import llm_client
from canon.cli.errors import err_config, err_no_api_key, err_no_brand, err_no_db
from canon.config import CanonConfig, ConfigError, load_config
from canon.db.connection import Database
from canon.db.schema import initialize
from canon.ingest.classifier import BrandContext, LiteLLMClassifier
from canon.ingest.embedder import LiteLLMEmbedder

DEFAULT_DB = Path(".canon.db")

console = Console()


def open_db(db_path: Path, must_exist: bool = True) -> sqlite3.Connection:
    """Open the project database and run migrations.

    Exits with code 1 when *must_exist* and the file is missing.
    """
    database = Database(db_path)
    if must_exist and not database.exists:
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)
    conn = database.connect()
    initialize(conn)
    return conn


def load_cli_config() -> CanonConfig:
    try:
        return load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc


def resolve_brand(brand: str | None, cfg: CanonConfig) -> str:
    """--brand wins; otherwise brand.name from canon.yaml."""
    resolved = brand or cfg.brand.name
    if not resolved:
        console.print(err_no_brand())
        raise typer.Exit(1)
    return resolved


def brand_context(cfg: CanonConfig) -> BrandContext | None:
    if not cfg.brand.name and not cfg.brand.domain:
        return None
    return BrandContext(name=cfg.brand.name or None, domain=cfg.brand.domain or None)


def require_api_key(model: str) -> None:
    try:
        llm_client.validate_api_key(model)
    except EnvironmentError as exc:
        console.print(err_no_api_key(llm_client.provider_of(model)))
        raise typer.Exit(1) from exc


def build_embedder(cfg: CanonConfig) -> LiteLLMEmbedder:
    require_api_key(cfg.embedding.model)
    return LiteLLMEmbedder(
        model=cfg.embedding.model,
        dimensions=cfg.embedding.dimensions,
        batch_size=cfg.embedding.batch_size,
    )


def build_classifier(cfg: CanonConfig) -> LiteLLMClassifier:
    require_api_key(cfg.classification.model)
    return LiteLLMClassifier(model=cfg.classification.model)
