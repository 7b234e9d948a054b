"""canon status: repository overview for one brand."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.panel import Panel

from canon.cli.common import DEFAULT_DB, console, load_cli_config, open_db, resolve_brand
from canon.config import CanonConfig
from canon.db.connection import vec_version
from canon.db.models import ChunkStatus
from canon.db.repository import ChunkFilter, Repository
from canon.db.schema import schema_version


def status_cmd(
    brand: Annotated[
        str | None,
        typer.Option("--brand", "-b", help="Brand id (defaults to brand.name in canon.yaml)."),
    ] = None,
    db: Annotated[Path, typer.Option("--db", help="Path to .canon.db.")] = DEFAULT_DB,
) -> None:
    """Show chunk, cluster and conflict counts for a brand."""
    cfg = load_cli_config()
    brand_id = resolve_brand(brand, cfg)

    _show_project_panel(brand_id, db, cfg)

    if not db.exists():
        console.print(
            Panel(
                "[yellow]No database found.[/]\n"
                "  Run:  canon init",
                title="[bold]Repository[/]",
                expand=False,
            )
        )
        return

    conn = open_db(db)
    try:
        _show_repository_panel(Repository(conn), brand_id)
        console.print(f"[dim]Schema v{schema_version(conn)}  |  sqlite-vec {vec_version(conn)}[/]")
    finally:
        conn.close()


def _show_project_panel(brand_id: str, db: Path, cfg: CanonConfig) -> None:
    db_info = str(db)
    if db.exists():
        size_mb = db.stat().st_size / (1024 * 1024)
        db_info = f"{db} ({size_mb:.1f} MB)"
    lines = [
        f"Brand:       [bold]{brand_id}[/]",
        f"Database:    {db_info}",
        f"Embedding:   {cfg.embedding.model} ({cfg.embedding.dimensions} dims)",
        f"Classifier:  {cfg.classification.model}",
    ]
    console.print(Panel("\n".join(lines), title="[bold]Project[/]", expand=False))


def _show_repository_panel(repo: Repository, brand_id: str) -> None:
    counts = {
        status: repo.count_chunks(brand_id, ChunkFilter(status=status)) for status in ChunkStatus
    }
    total = sum(counts.values())
    clusters = repo.list_clusters(brand_id, limit=None)
    with_canonical = sum(1 for c in clusters if c.canonical_chunk_id)
    open_conflicts = len(repo.list_conflicts(brand_id, resolved=False))

    lines = [
        f"Chunks: [bold]{total:,}[/]  |  "
        f"[green]approved {counts[ChunkStatus.APPROVED]:,}[/]  |  "
        f"inferred {counts[ChunkStatus.INFERRED]:,}  |  "
        f"[dim]deprecated {counts[ChunkStatus.DEPRECATED]:,}[/]",
        f"Clusters: [bold]{len(clusters):,}[/]  ({with_canonical:,} with a canonical chunk)",
    ]
    if open_conflicts:
        lines.append(f"Conflicts: [yellow]{open_conflicts:,} open[/]")
    else:
        lines.append("Conflicts: [green]none open[/]")
    if total == 0:
        lines.append("\n[dim]Empty. Run:  canon ingest --brand <id> --file <path>[/]")

    console.print(Panel("\n".join(lines), title="[bold]Repository[/]", expand=False))
