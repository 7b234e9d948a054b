"""Rich error messages for the canon CLI.

Each message names what went wrong and the command or setting that fixes it.

Usage:
    from canon.cli.errors import err_no_db
    console.print(err_no_db(".canon.db"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from rich.markup import escape

from canon.errors import CanonError, ChunkLockedError, DimensionMismatchError, NotFoundError
from canon.llm_client import api_key_env


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    env_var = api_key_env(provider) or f"{provider.upper()}_API_KEY"
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-..."
    )


def err_no_db(db_path: str = ".canon.db") -> str:
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  canon init"
    )


def err_no_brand() -> str:
    return (
        "[red]Error:[/] No brand given.\n"
        "  Pass --brand <id>, or set brand.name in canon.yaml."
    )


def err_config(message: str) -> str:
    return f"[red]Error:[/] Invalid configuration: {message}\n  Fix canon.yaml and retry."


def err_no_content() -> str:
    return (
        "[red]Error:[/] Nothing to ingest.\n"
        "  Pass exactly one of --file PATH or --text TEXT."
    )


def err_unreadable_file(path: str, reason: str) -> str:
    return (
        f"[red]Error:[/] Cannot read '{path}': {reason}\n"
        "  Supported: .md .markdown .txt .text .rst .html .htm .pdf"
    )


def err_not_found(kind: str, record_id: str) -> str:
    listing = {"Chunk": "chunks", "Cluster": "clusters", "Conflict": "conflicts"}.get(kind, "chunks")
    return (
        f"[red]Error:[/] {kind} '{record_id}' not found for this brand.\n"
        f"  Run:  canon {listing} list --brand <id>"
    )


def err_chunk_locked(chunk_id: str, action: str) -> str:
    return (
        f"[red]Error:[/] Cannot {action} locked chunk '{chunk_id}'.\n"
        f"  Run:  canon chunks unlock {chunk_id} --brand <id>"
    )


def err_dimension_mismatch(expected: int, actual: int) -> str:
    return (
        "[red]Error:[/] Embedding dimension mismatch.\n"
        f"  Expected:  {expected}\n"
        f"  Got:       {actual}\n"
        "  Set embedding.dimensions in canon.yaml to match the embedding model, "
        "or re-ingest into a fresh database."
    )


def err_from_exception(exc: CanonError) -> str:
    """Pick the actionable message for a library error."""
    if isinstance(exc, NotFoundError):
        return err_not_found(exc.kind, exc.record_id)
    if isinstance(exc, ChunkLockedError):
        return err_chunk_locked(exc.chunk_id, exc.action)
    if isinstance(exc, DimensionMismatchError):
        return err_dimension_mismatch(exc.expected, exc.actual)
    return f"[red]Error:[/] {escape(str(exc))}"


def err_ingest_failed(exc: Exception) -> str:
    """Embedding or a model call failed before anything was stored.

    Example:
        ✗ Error: Embedder returned 1 vectors for 2 chunks.
          Nothing was stored. Check the models in canon.yaml and your API key, then retry.
    """
    return (
        f"  [red]✗ Error:[/] {escape(str(exc))}\n"
        "  Nothing was stored. Check the models in canon.yaml and your API key, then retry."
    )


def err_model_call(exc: Exception) -> str:
    return (
        f"  [red]✗ Error:[/] {escape(str(exc))}\n"
        "  Check embedding.model in canon.yaml and your API key, then retry."
    )
