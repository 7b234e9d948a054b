"""canon init: create .canon.db and a starter canon.yaml.

Creates:
  .canon.db    empty brand language repository with schema
  canon.yaml   project config (brand, models, thresholds)

Re-running is safe: the schema is migrated forward, existing files are kept.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from canon.cli.common import console, open_db
from canon.config import write_project_config

_GITIGNORE_ENTRIES = (".canon.db", ".canon.db-wal", ".canon.db-shm")


def init_cmd(
    project_dir: Annotated[
        Path,
        typer.Argument(help="Directory to initialize. Defaults to current directory."),
    ] = Path("."),
    brand_name: Annotated[
        str,
        typer.Option("--brand-name", help="Brand name written to canon.yaml (brand.name)."),
    ] = "",
) -> None:
    """Initialize a Canon project: database + canon.yaml."""
    project_dir = project_dir.resolve()
    project_dir.mkdir(parents=True, exist_ok=True)

    db_path = project_dir / ".canon.db"
    existed = db_path.exists()
    conn = open_db(db_path, must_exist=False)
    conn.close()
    if existed:
        console.print(f"  [yellow]⚠[/] {db_path.name} already exists, schema is up to date")
    else:
        console.print(f"  [green]✓[/] {db_path.name}")

    cfg_path = project_dir / "canon.yaml"
    cfg_existed = cfg_path.exists()
    write_project_config(project_dir, brand_name)
    if cfg_existed:
        console.print("  [yellow]⚠[/] canon.yaml already exists, left unchanged")
    else:
        console.print("  [green]✓[/] canon.yaml")

    _update_gitignore(project_dir)

    console.print("\n[bold green]✓ Canon project initialized.[/]")
    console.print("\nNext steps:")
    console.print("  1. canon ingest --brand <id> --file copy.md     (build the repository)")
    console.print("  2. canon chunks list --brand <id>               (review inferred copy)")
    console.print("  3. canon chunks approve <chunk-id> --brand <id> (approve phrasing)")
    console.print('  4. canon query "your draft" --brand <id>        (ground new copy)')


def _update_gitignore(project_dir: Path) -> None:
    """Append the database files to an existing .gitignore."""
    gitignore = project_dir / ".gitignore"
    if not gitignore.exists():
        return
    existing = gitignore.read_text(encoding="utf-8").splitlines()
    to_add = [e for e in _GITIGNORE_ENTRIES if e not in existing]
    if to_add:
        with gitignore.open("a", encoding="utf-8") as f:
            f.write("\n# Canon\n")
            for entry in to_add:
                f.write(f"{entry}\n")
        console.print("  [green]✓[/] .gitignore (updated with Canon entries)")
