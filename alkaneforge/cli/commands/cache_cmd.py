"""``alkaneforge cache-list`` — show the records in the artifact cache."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from alkaneforge.config import ForgeSettings
from alkaneforge.core.artifact_cache import ArtifactCache
from alkaneforge.core.errors import CacheIOError

console = Console()


def cache_list_cmd(
    cache_root: Path = typer.Option(
        None,
        "--cache-root",
        "-c",
        help="Artifact cache directory (defaults to ALKANEFORGE_ARTIFACT_CACHE_ROOT).",
    ),
) -> None:
    """List cached artifacts with their size and ABI status."""
    root = cache_root or ForgeSettings().artifact_cache_root
    try:
        cache = ArtifactCache(root)
        keys = cache.keys()
    except CacheIOError as exc:
        console.print(f"[bold red]Cache error:[/bold red] {exc}")
        raise typer.Exit(code=1)

    if not keys:
        console.print("[dim]Artifact cache is empty.[/dim]")
        return

    table = Table(title=f"Artifact cache ({len(keys)} records)")
    table.add_column("Key", style="cyan")
    table.add_column("Contract")
    table.add_column("Size", justify="right")
    table.add_column("ABI", justify="center")
    table.add_column("Created")

    for key in keys:
        record = cache.lookup(key)
        if record is None:
            continue
        abi = "[green]Yes[/green]" if record.abi is not None else "[yellow]Missing[/yellow]"
        table.add_row(
            key,
            record.contract_name or "-",
            str(record.size_bytes),
            abi,
            record.created_at.strftime("%Y-%m-%d %H:%M:%S"),
        )

    console.print(table)
