"""``alkaneforge compile SOURCE`` — compile a contract source file.

This command is a trust boundary: failures are reported as a generic message
plus a correlation id.  Details (paths, toolchain output) go to the log only.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel

from alkaneforge.config import ForgeSettings
from alkaneforge.core.errors import CompilationError
from alkaneforge.core.orchestrator import CompilationOrchestrator

console = Console()
logger = logging.getLogger(__name__)


def build_orchestrator(settings: ForgeSettings) -> CompilationOrchestrator:
    return CompilationOrchestrator(settings)


def compile_cmd(
    source: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        readable=True,
        help="Contract source file (lib.rs).",
    ),
    name: str = typer.Option(
        "MyContract",
        "--name",
        "-n",
        help="Contract name, used for log correlation only.",
    ),
    out_dir: Path = typer.Option(
        Path("."),
        "--out",
        "-o",
        file_okay=False,
        help="Directory for the compiled binary and ABI.",
    ),
    gzip_output: bool = typer.Option(
        False,
        "--gzip",
        help="Write the binary gzip-compressed (.wasm.gz).",
    ),
) -> None:
    """Compile a contract and write ``<key>.wasm`` and ``<key>.abi.json``."""
    settings = ForgeSettings()
    orchestrator = build_orchestrator(settings)
    code = source.read_text(encoding="utf-8")

    try:
        result = asyncio.run(orchestrator.compile(name, code))
    except CompilationError as exc:
        error_id = str(uuid.uuid4())
        logger.error("compile:failed error_id=%s key=%s detail=%s", error_id, exc.key, exc)
        console.print(f"[bold red]Compilation failed[/bold red] (error id: {error_id})")
        raise typer.Exit(code=1)

    out_dir.mkdir(parents=True, exist_ok=True)
    if gzip_output:
        binary_path = out_dir / f"{result.key}.wasm.gz"
        binary_path.write_bytes(result.gzipped())
    else:
        binary_path = out_dir / f"{result.key}.wasm"
        binary_path.write_bytes(result.binary)
    abi_path = out_dir / f"{result.key}.abi.json"
    abi_path.write_text(result.abi.to_json(), encoding="utf-8")

    console.print(
        Panel(
            f"[bold]Contract:[/bold] {result.contract_name} ({result.abi.name})\n"
            f"[bold]Key:[/bold] {result.key}\n"
            f"[bold]Outcome:[/bold] {result.outcome.value}\n"
            f"[bold]Size:[/bold] {len(result.binary)} bytes\n"
            f"[bold]Methods:[/bold] {len(result.abi.methods)}\n"
            f"[bold]Binary:[/bold] {binary_path}\n"
            f"[bold]ABI:[/bold] {abi_path}",
            title="[bold green]Compiled[/bold green]",
            border_style="green",
        )
    )
