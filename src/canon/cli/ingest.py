"""canon ingest: add brand copy to the repository.

Content comes from exactly one of:
  --file PATH   .md .markdown .txt .text .rst (as-is), .html .htm (crawl), .pdf (upload)
  --text TEXT   inline copy (manual entry, stored pre-approved)

--source overrides the provenance inferred from the input.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table
from rich.text import Text

from canon.cli.common import (
    DEFAULT_DB,
    brand_context,
    build_classifier,
    build_embedder,
    console,
    load_cli_config,
    open_db,
    resolve_brand,
)
from canon.cli.errors import err_from_exception, err_ingest_failed, err_no_content, err_unreadable_file
from canon.config import CanonConfig
from canon.db.models import ChunkSource
from canon.db.repository import Repository
from canon.errors import CanonError
from canon.ingest.chunker import ContentChunker
from canon.ingest.classifier import ClassificationCache
from canon.ingest.loaders import default_source_for, load_text
from canon.ingest.pipeline import IngestRequest, IngestResult, ingest, validate_request
from canon.llm_client import ProviderError

_STAGE_LABELS = {
    "chunk": "Chunking…",
    "classify": "Classifying…",
    "embed": "Embedding…",
    "store": "Storing chunks…",
    "cluster": "Clustering…",
}

_PREVIEW_CHARS = 70


def ingest_cmd(
    brand: Annotated[
        str | None,
        typer.Option("--brand", "-b", help="Brand id (defaults to brand.name in canon.yaml)."),
    ] = None,
    file: Annotated[
        Path | None,
        typer.Option("--file", "-f", help="File to ingest (.md, .txt, .rst, .html, .pdf)."),
    ] = None,
    text: Annotated[
        str | None,
        typer.Option("--text", "-t", help="Inline copy to ingest."),
    ] = None,
    source: Annotated[
        str | None,
        typer.Option("--source", help="Provenance: crawl, upload, manual or generated."),
    ] = None,
    source_url: Annotated[
        str | None,
        typer.Option("--source-url", help="Page URL the copy came from (http/https)."),
    ] = None,
    source_page: Annotated[
        str | None,
        typer.Option("--source-page", help="Page or section label within the source."),
    ] = None,
    actor: Annotated[
        str | None,
        typer.Option("--actor", help="Recorded as approver for manual content."),
    ] = None,
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .canon.db (created if missing)."),
    ] = DEFAULT_DB,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Show the chunks that would be stored, without model calls or writes."),
    ] = False,
) -> None:
    """Chunk, classify, embed and store brand copy; report duplicates and clusters."""
    if (file is None) == (text is None):
        console.print(err_no_content())
        raise typer.Exit(1)

    cfg = load_cli_config()
    brand_id = resolve_brand(brand, cfg)

    if file is not None:
        try:
            content = load_text(file)
        except (OSError, ValueError) as exc:
            console.print(err_unreadable_file(str(file), str(exc)))
            raise typer.Exit(1) from exc
        inferred_source = default_source_for(file)
        source_id = str(file)
    else:
        content = text or ""
        inferred_source = ChunkSource.MANUAL
        source_id = None

    request = IngestRequest(
        content=content,
        source=source or inferred_source,
        source_id=source_id,
        source_url=source_url,
        source_page=source_page,
        actor=actor,
    )
    try:
        validate_request(request, brand_id)
    except CanonError as exc:
        console.print(err_from_exception(exc))
        raise typer.Exit(1) from exc

    if dry_run:
        _show_dry_run(content, cfg)
        return

    classifier = build_classifier(cfg)
    embedder = build_embedder(cfg)
    cache = ClassificationCache() if cfg.classification.cache else None

    conn = open_db(db, must_exist=False)
    try:
        repo = Repository(conn)
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            transient=True,
            console=console,
        ) as prog:
            task = prog.add_task("Chunking…", total=None)

            def _on_progress(stage: str, done: int, total: int) -> None:
                prog.update(
                    task,
                    description=_STAGE_LABELS.get(stage, stage),
                    completed=done,
                    total=total or None,
                )

            result = ingest(
                request,
                brand_id,
                repo,
                classifier,
                embedder,
                config=cfg,
                brand=brand_context(cfg),
                cache=cache,
                on_progress=_on_progress,
            )
    except CanonError as exc:
        console.print(err_from_exception(exc))
        raise typer.Exit(1) from exc
    except (ValueError, RuntimeError, ProviderError) as exc:
        console.print(err_ingest_failed(exc))
        raise typer.Exit(1) from exc
    finally:
        conn.close()

    _show_result(result)


# ------------------------------------------------------------------
# Output
# ------------------------------------------------------------------


def _show_dry_run(content: str, cfg: CanonConfig) -> None:
    chunker = ContentChunker(
        min_chunk_size=cfg.chunking.min_chunk_size,
        max_chunk_size=cfg.chunking.max_chunk_size,
        avoid_patterns=cfg.chunking.avoid_patterns,
    )
    candidates = chunker.chunk(content)
    console.print(f"[dim]Dry run: {len(candidates)} chunk(s) would be stored.[/]")
    if not candidates:
        return
    table = Table(show_header=True, header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("Heading")
    table.add_column("Chars", justify="right")
    table.add_column("Text")
    for i, candidate in enumerate(candidates, start=1):
        table.add_row(
            str(i),
            Text(candidate.metadata.get("heading", "")),
            str(len(candidate.text)),
            _preview(candidate.text),
        )
    console.print(table)


def _show_result(result: IngestResult) -> None:
    if not result.chunks_created:
        console.print("[yellow]No chunks found in the content.[/] Nothing was stored.")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Chunk")
    table.add_column("Category")
    table.add_column("Dup", justify="right")
    table.add_column("Near", justify="right")
    table.add_column("Related", justify="right")
    table.add_column("Text")
    for item in result.chunks:
        category = Text(item.chunk.category or "")
        if item.classification_failed and not item.chunk.category:
            category = Text("unclassified", style="yellow")
        table.add_row(
            item.chunk.id[:8],
            category,
            str(len(item.duplicates)),
            str(len(item.near_duplicates)),
            str(len(item.related)),
            _preview(item.chunk.text),
        )
    console.print(table)

    console.print(
        f"  [green]✓[/] {result.chunks_created} chunk(s) stored  |  "
        f"{result.clusters_created} cluster(s)  |  "
        f"{result.conflicts_created} conflict(s)"
    )
    if result.classification_failures:
        console.print(
            f"  [yellow]⚠[/] {result.classification_failures} chunk(s) could not be classified; "
            "defaults were stored."
        )


def _preview(text: str) -> Text:
    flat = " ".join(text.split())
    return Text(flat if len(flat) <= _PREVIEW_CHARS else flat[: _PREVIEW_CHARS - 1] + "…")
