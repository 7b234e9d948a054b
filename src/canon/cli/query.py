"""canon query: find existing brand language for a draft, best-first."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from canon.cli.common import DEFAULT_DB, build_embedder, console, load_cli_config, open_db, resolve_brand
from canon.cli.errors import err_from_exception, err_model_call
from canon.db.repository import Repository
from canon.errors import CanonError
from canon.llm_client import ProviderError
from canon.rag.grounding import GroundingContext, prepare_grounding
from canon.rag.query import QueryOptions


def query_cmd(
    text: Annotated[str, typer.Argument(help="Draft copy or request to match against the repository.")],
    brand: Annotated[
        str | None,
        typer.Option("--brand", "-b", help="Brand id (defaults to brand.name in canon.yaml)."),
    ] = None,
    category: Annotated[str | None, typer.Option("--category", help="Only this category.")] = None,
    intent: Annotated[str | None, typer.Option("--intent", help="Only this intent.")] = None,
    channel: Annotated[str | None, typer.Option("--channel", help="Only this channel.")] = None,
    limit: Annotated[
        int | None, typer.Option("--limit", "-n", help="Maximum results (1-20).")
    ] = None,
    min_similarity: Annotated[
        float | None, typer.Option("--min-similarity", help="Similarity floor (0-1).")
    ] = None,
    prompt: Annotated[
        bool,
        typer.Option("--prompt", help="Also print the grounding prompt addition."),
    ] = False,
    record_usage: Annotated[
        bool,
        typer.Option("--record-usage", help="Count the returned chunks as used."),
    ] = False,
    db: Annotated[Path, typer.Option("--db", help="Path to .canon.db.")] = DEFAULT_DB,
) -> None:
    """Query the repository; canonical and approved phrasing rank first."""
    cfg = load_cli_config()
    brand_id = resolve_brand(brand, cfg)
    options = QueryOptions(
        limit=limit if limit is not None else cfg.query.limit,
        min_similarity=min_similarity if min_similarity is not None else cfg.query.min_similarity,
        prefer_canonical=cfg.query.prefer_canonical,
        prefer_approved=cfg.query.prefer_approved,
        candidate_pool=cfg.query.candidate_pool,
    )

    conn = open_db(db)
    try:
        embedder = build_embedder(cfg)
        result = prepare_grounding(
            Repository(conn),
            embedder,
            brand_id,
            text,
            GroundingContext(category=category, intent=intent, channel=channel),
            options=options,
            record_usage=record_usage,
        )
    except CanonError as exc:
        console.print(err_from_exception(exc))
        raise typer.Exit(1) from exc
    except (RuntimeError, ProviderError) as exc:
        console.print(err_model_call(exc))
        raise typer.Exit(1) from exc
    finally:
        conn.close()

    if not result.chunks:
        console.print("[yellow]No matching brand language found.[/]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("Chunk")
    table.add_column("Similarity", justify="right")
    table.add_column("Status")
    table.add_column("Text")
    for i, chunk in enumerate(result.chunks, start=1):
        if chunk.is_canonical:
            status = "[bold green]canonical[/]"
        elif chunk.is_approved:
            status = "[green]approved[/]"
        else:
            status = "[dim]inferred[/]"
        table.add_row(str(i), chunk.id[:8], f"{chunk.similarity:.3f}", status, Text(chunk.text))
    console.print(table)

    if prompt:
        if result.prompt_addition:
            console.print(Panel(Text(result.prompt_addition.rstrip()), title="[bold]Grounding[/]", expand=False))
        else:
            console.print("[dim]No approved phrasing matched; grounding prompt is empty.[/]")
