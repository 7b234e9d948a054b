"""Canon CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from canon.cli.chunks import chunks_app
from canon.cli.clusters import clusters_app
from canon.cli.conflicts import conflicts_app
from canon.cli.ingest import ingest_cmd
from canon.cli.init import init_cmd
from canon.cli.query import query_cmd
from canon.cli.status import status_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("canon")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"canon {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="canon",
    help=(
        "Canon: brand language repository.\n\n"
        "  canon ingest   Chunk, classify and embed brand copy; flag duplicates.\n"
        "  canon query    Find approved phrasing to ground new copy."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """Canon: brand language repository."""


app.command("init")(init_cmd)
app.command("ingest")(ingest_cmd)
app.command("query")(query_cmd)
app.command("status")(status_cmd)
app.add_typer(chunks_app, name="chunks")
app.add_typer(clusters_app, name="clusters")
app.add_typer(conflicts_app, name="conflicts")


@app.command("version")
def version_cmd() -> None:
    """Show the installed Canon version."""
    typer.echo(f"canon {_installed_version()}")


if __name__ == "__main__":
    app()
