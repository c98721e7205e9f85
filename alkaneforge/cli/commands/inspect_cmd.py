"""``alkaneforge abi`` / ``alkaneforge hash`` — offline source inspection."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from alkaneforge.config import ForgeSettings
from alkaneforge.core.abi_extractor import extract_abi
from alkaneforge.core.hasher import content_key

console = Console()


def abi_cmd(
    source: Path = typer.Argument(..., exists=True, dir_okay=False, help="Contract source file."),
) -> None:
    """Print the ABI extracted from a contract source file as JSON."""
    abi = extract_abi(source.read_text(encoding="utf-8"))
    console.print_json(abi.to_json())


def hash_cmd(
    source: Path = typer.Argument(..., exists=True, dir_okay=False, help="Contract source file."),
) -> None:
    """Print the content key a source file is cached under."""
    settings = ForgeSettings()
    typer.echo(content_key(source.read_text(encoding="utf-8"), settings.key_length))
