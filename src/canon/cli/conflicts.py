"""canon conflicts: approved phrasings that disagree within a cluster.

Commands:
  canon conflicts list [--all]
  canon conflicts resolve <id> [--reopen]
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table
from rich.text import Text

from canon.cli.common import DEFAULT_DB, console, load_cli_config, open_db, resolve_brand
from canon.cli.errors import err_from_exception
from canon.db.models import ConflictSeverity
from canon.db.repository import Repository
from canon.errors import CanonError
from canon.review.conflicts import resolve_conflict

conflicts_app = typer.Typer(
    name="conflicts",
    help="Review conflicting approved phrasings (list, resolve).",
    add_completion=False,
)

BrandOpt = Annotated[
    str | None,
    typer.Option("--brand", "-b", help="Brand id (defaults to brand.name in canon.yaml)."),
]
DbOpt = Annotated[Path, typer.Option("--db", help="Path to .canon.db.")]

_SEVERITY_STYLE = {
    ConflictSeverity.HIGH: "[red]HIGH[/]",
    ConflictSeverity.MEDIUM: "[yellow]MEDIUM[/]",
    ConflictSeverity.LOW: "LOW",
}


@conflicts_app.command("list")
def conflicts_list_cmd(
    brand: BrandOpt = None,
    show_all: Annotated[bool, typer.Option("--all", help="Include resolved conflicts.")] = False,
    db: DbOpt = DEFAULT_DB,
) -> None:
    """List open conflicts, most severe first."""
    cfg = load_cli_config()
    brand_id = resolve_brand(brand, cfg)
    conn = open_db(db)
    try:
        conflicts = Repository(conn).list_conflicts(brand_id, resolved=None if show_all else False)
    finally:
        conn.close()

    if not conflicts:
        console.print("[green]No conflicts.[/]")
        raise typer.Exit(0)

    table = Table(title=f"Conflicts: {brand_id}", show_header=True, header_style="bold")
    table.add_column("Id", style="bold")
    table.add_column("Severity")
    table.add_column("Cluster")
    table.add_column("Chunks")
    table.add_column("Description")
    table.add_column("Resolved")
    for conflict in conflicts:
        resolved = f"[green]✓[/] {conflict.resolved_by or ''}".rstrip() if conflict.resolved else ""
        table.add_row(
            conflict.id,
            _SEVERITY_STYLE[conflict.severity],
            conflict.cluster_id,
            f"{conflict.chunk_id_1}\n{conflict.chunk_id_2}",
            Text(conflict.description),
            resolved,
        )
    console.print(table)


@conflicts_app.command("resolve")
def conflicts_resolve_cmd(
    conflict_id: Annotated[str, typer.Argument(help="Conflict id.")],
    brand: BrandOpt = None,
    actor: Annotated[str | None, typer.Option("--actor", help="Reviewer recorded as resolver.")] = None,
    reopen: Annotated[bool, typer.Option("--reopen", help="Mark as unresolved again.")] = False,
    db: DbOpt = DEFAULT_DB,
) -> None:
    """Mark a conflict resolved (or reopen it)."""
    cfg = load_cli_config()
    brand_id = resolve_brand(brand, cfg)
    conn = open_db(db)
    try:
        resolve_conflict(Repository(conn), brand_id, conflict_id, actor, resolved=not reopen)
    except CanonError as exc:
        console.print(err_from_exception(exc))
        raise typer.Exit(1) from exc
    finally:
        conn.close()

    verb = "Reopened" if reopen else "Resolved"
    console.print(f"[green]✓[/] {verb} {conflict_id}")
