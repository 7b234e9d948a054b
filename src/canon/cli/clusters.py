"""canon clusters: inspect near-duplicate groups and pick canonical phrasing.

Commands:
  canon clusters list                           largest clusters first
  canon clusters show <cluster-id>              members, canonical first
  canon clusters set-canonical <cluster> <chunk>
  canon clusters set-canonical <cluster> --clear
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from canon.cli.common import DEFAULT_DB, console, load_cli_config, open_db, resolve_brand
from canon.cli.errors import err_from_exception
from canon.db.repository import Repository
from canon.errors import CanonError
from canon.review.clusters import cluster_detail, set_cluster_canonical

clusters_app = typer.Typer(
    name="clusters",
    help="Inspect clusters and choose canonical phrasing (list, show, set-canonical).",
    add_completion=False,
)

BrandOpt = Annotated[
    str | None,
    typer.Option("--brand", "-b", help="Brand id (defaults to brand.name in canon.yaml)."),
]
DbOpt = Annotated[Path, typer.Option("--db", help="Path to .canon.db.")]


@clusters_app.command("list")
def clusters_list_cmd(
    brand: BrandOpt = None,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Rows per page.")] = 50,
    db: DbOpt = DEFAULT_DB,
) -> None:
    """List clusters, largest first."""
    cfg = load_cli_config()
    brand_id = resolve_brand(brand, cfg)
    conn = open_db(db)
    try:
        clusters = Repository(conn).list_clusters(brand_id, limit=limit)
    finally:
        conn.close()

    if not clusters:
        console.print("[yellow]No clusters yet.[/] Ingest overlapping copy to form clusters.")
        raise typer.Exit(0)

    table = Table(title=f"Clusters: {brand_id}", show_header=True, header_style="bold")
    table.add_column("Id", style="bold")
    table.add_column("Variants", justify="right")
    table.add_column("Canonical")
    table.add_column("Summary")
    for cluster in clusters:
        canonical = cluster.canonical_chunk_id or "[yellow]none[/]"
        table.add_row(cluster.id, str(cluster.variant_count), canonical, Text(cluster.concept_summary or ""))
    console.print(table)


@clusters_app.command("show")
def clusters_show_cmd(
    cluster_id: Annotated[str, typer.Argument(help="Cluster id.")],
    brand: BrandOpt = None,
    db: DbOpt = DEFAULT_DB,
) -> None:
    """Show a cluster's members."""
    cfg = load_cli_config()
    brand_id = resolve_brand(brand, cfg)
    conn = open_db(db)
    try:
        cluster, members = cluster_detail(Repository(conn), brand_id, cluster_id)
    except CanonError as exc:
        console.print(err_from_exception(exc))
        raise typer.Exit(1) from exc
    finally:
        conn.close()

    title = f"Cluster {cluster.id}"
    if cluster.concept_summary:
        title += f": {escape(cluster.concept_summary)}"
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Chunk", style="bold")
    table.add_column("Status")
    table.add_column("Uses", justify="right")
    table.add_column("Text")
    for chunk in members:
        status = chunk.status.value
        if chunk.canonical:
            status = f"[bold green]{status} (canonical)[/]"
        table.add_row(chunk.id, status, str(chunk.usage_count), Text(chunk.text))
    console.print(table)


@clusters_app.command("set-canonical")
def clusters_set_canonical_cmd(
    cluster_id: Annotated[str, typer.Argument(help="Cluster id.")],
    chunk_id: Annotated[
        str | None, typer.Argument(help="Approved member to make canonical.")
    ] = None,
    clear: Annotated[bool, typer.Option("--clear", help="Remove the canonical chunk.")] = False,
    brand: BrandOpt = None,
    db: DbOpt = DEFAULT_DB,
) -> None:
    """Make an approved member the canonical phrasing of its cluster."""
    if (chunk_id is None) != clear:
        console.print("[red]Error:[/] Pass a CHUNK_ID or --clear (not both).")
        raise typer.Exit(1)

    cfg = load_cli_config()
    brand_id = resolve_brand(brand, cfg)
    conn = open_db(db)
    try:
        set_cluster_canonical(Repository(conn), brand_id, cluster_id, chunk_id)
    except CanonError as exc:
        console.print(err_from_exception(exc))
        raise typer.Exit(1) from exc
    finally:
        conn.close()

    if chunk_id is None:
        console.print(f"[green]✓[/] Cleared canonical chunk of {cluster_id}")
    else:
        console.print(f"[green]✓[/] {chunk_id} is now canonical for {cluster_id}")
