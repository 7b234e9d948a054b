"""canon chunks: review stored copy.

Commands:
  canon chunks list                 show chunks (filter by status / category / search)
  canon chunks approve <id>         mark as approved brand language
  canon chunks deprecate <id>       retire a chunk from queries and duplicate checks
  canon chunks lock <id>            freeze status against further changes
  canon chunks unlock <id>
  canon chunks delete <id>          remove a chunk permanently
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table
from rich.text import Text

from canon.cli.common import DEFAULT_DB, console, load_cli_config, open_db, resolve_brand
from canon.cli.errors import err_from_exception
from canon.db.models import Chunk, ChunkStatus
from canon.db.repository import ChunkFilter, Repository
from canon.errors import CanonError
from canon.review.chunks import delete_chunk, update_chunk_review

chunks_app = typer.Typer(
    name="chunks",
    help="Review stored chunks (list, approve, deprecate, lock, unlock, delete).",
    add_completion=False,
)

BrandOpt = Annotated[
    str | None,
    typer.Option("--brand", "-b", help="Brand id (defaults to brand.name in canon.yaml)."),
]
DbOpt = Annotated[Path, typer.Option("--db", help="Path to .canon.db.")]
ActorOpt = Annotated[str | None, typer.Option("--actor", help="Reviewer recorded on the change.")]
ChunkIdArg = Annotated[str, typer.Argument(help="Chunk id.")]

_STATUS_STYLE = {
    ChunkStatus.APPROVED: "[green]APPROVED[/]",
    ChunkStatus.INFERRED: "INFERRED",
    ChunkStatus.DEPRECATED: "[dim]DEPRECATED[/]",
}


@chunks_app.command("list")
def chunks_list_cmd(
    brand: BrandOpt = None,
    status: Annotated[
        str | None, typer.Option("--status", help="INFERRED, APPROVED or DEPRECATED.")
    ] = None,
    category: Annotated[str | None, typer.Option("--category", help="Only this category.")] = None,
    search: Annotated[str | None, typer.Option("--search", "-s", help="Text substring.")] = None,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Rows per page.")] = 50,
    offset: Annotated[int, typer.Option("--offset", help="Rows to skip.")] = 0,
    db: DbOpt = DEFAULT_DB,
) -> None:
    """List chunks, newest first."""
    cfg = load_cli_config()
    brand_id = resolve_brand(brand, cfg)
    status_filter = None
    if status is not None:
        try:
            status_filter = ChunkStatus(status.upper())
        except ValueError as exc:
            console.print(f"[red]Error:[/] Unknown status '{status}'. Use INFERRED, APPROVED or DEPRECATED.")
            raise typer.Exit(1) from exc

    flt = ChunkFilter(status=status_filter, category=category, search=search)
    conn = open_db(db)
    try:
        repo = Repository(conn)
        total = repo.count_chunks(brand_id, flt)
        chunks = repo.find_chunks(brand_id, flt, limit=limit, offset=offset, descending=True)
    finally:
        conn.close()

    if not chunks:
        console.print("[yellow]No chunks found.[/]")
        raise typer.Exit(0)

    table = Table(title=f"Chunks: {brand_id}", show_header=True, header_style="bold")
    table.add_column("Id", style="bold")
    table.add_column("Status")
    table.add_column("Flags")
    table.add_column("Category")
    table.add_column("Uses", justify="right")
    table.add_column("Text")
    for chunk in chunks:
        table.add_row(
            chunk.id,
            _STATUS_STYLE[chunk.status],
            _flags(chunk),
            Text(chunk.category or ""),
            str(chunk.usage_count),
            Text(chunk.text),
        )
    console.print(table)
    console.print(f"\n  {offset + 1}-{offset + len(chunks)} of {total}")


@chunks_app.command("approve")
def chunks_approve_cmd(
    chunk_id: ChunkIdArg,
    brand: BrandOpt = None,
    actor: ActorOpt = None,
    canonical: Annotated[
        bool, typer.Option("--canonical", help="Also make it the canonical phrasing of its cluster.")
    ] = False,
    db: DbOpt = DEFAULT_DB,
) -> None:
    """Approve a chunk as brand language."""
    chunk = _review(db, brand, chunk_id, actor, status=ChunkStatus.APPROVED, canonical=canonical or None)
    suffix = " (canonical)" if chunk.canonical else ""
    console.print(f"[green]✓[/] Approved {chunk.id}{suffix}")


@chunks_app.command("deprecate")
def chunks_deprecate_cmd(
    chunk_id: ChunkIdArg, brand: BrandOpt = None, actor: ActorOpt = None, db: DbOpt = DEFAULT_DB
) -> None:
    """Deprecate a chunk; it no longer appears in queries or duplicate checks."""
    chunk = _review(db, brand, chunk_id, actor, status=ChunkStatus.DEPRECATED)
    console.print(f"[green]✓[/] Deprecated {chunk.id}")


@chunks_app.command("lock")
def chunks_lock_cmd(chunk_id: ChunkIdArg, brand: BrandOpt = None, db: DbOpt = DEFAULT_DB) -> None:
    """Lock a chunk; its status cannot change and it cannot be deleted."""
    chunk = _review(db, brand, chunk_id, None, locked=True)
    console.print(f"[green]✓[/] Locked {chunk.id}")


@chunks_app.command("unlock")
def chunks_unlock_cmd(chunk_id: ChunkIdArg, brand: BrandOpt = None, db: DbOpt = DEFAULT_DB) -> None:
    """Unlock a chunk."""
    chunk = _review(db, brand, chunk_id, None, locked=False)
    console.print(f"[green]✓[/] Unlocked {chunk.id}")


@chunks_app.command("delete")
def chunks_delete_cmd(
    chunk_id: ChunkIdArg,
    brand: BrandOpt = None,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt.")] = False,
    db: DbOpt = DEFAULT_DB,
) -> None:
    """Delete a chunk permanently."""
    cfg = load_cli_config()
    brand_id = resolve_brand(brand, cfg)
    if not yes and not typer.confirm(f"Delete chunk {chunk_id}?", default=False):
        console.print("[dim]Cancelled.[/]")
        raise typer.Exit(0)

    conn = open_db(db)
    try:
        delete_chunk(Repository(conn), brand_id, chunk_id)
    except CanonError as exc:
        console.print(err_from_exception(exc))
        raise typer.Exit(1) from exc
    finally:
        conn.close()
    console.print(f"[green]✓[/] Deleted {chunk_id}")


def _review(db: Path, brand: str | None, chunk_id: str, actor: str | None, **changes) -> Chunk:
    cfg = load_cli_config()
    brand_id = resolve_brand(brand, cfg)
    conn = open_db(db)
    try:
        return update_chunk_review(Repository(conn), brand_id, chunk_id, actor, **changes)
    except CanonError as exc:
        console.print(err_from_exception(exc))
        raise typer.Exit(1) from exc
    finally:
        conn.close()


def _flags(chunk: Chunk) -> str:
    flags = []
    if chunk.canonical:
        flags.append("[bold green]canonical[/]")
    if chunk.locked:
        flags.append("[yellow]locked[/]")
    return " ".join(flags)
