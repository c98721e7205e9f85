"""Main Typer application — imports and registers all CLI commands.

Entry point: ``alkaneforge`` (configured via pyproject.toml console_scripts).
"""

from __future__ import annotations

import typer

from alkaneforge.cli.commands.cache_cmd import cache_list_cmd
from alkaneforge.cli.commands.compile_cmd import compile_cmd
from alkaneforge.cli.commands.inspect_cmd import abi_cmd, hash_cmd
from alkaneforge.config import ForgeSettings
from alkaneforge.observability import configure_logging

app = typer.Typer(
    name="alkaneforge",
    help="alkaneforge: cached, deduplicating compiler front end for Alkanes contracts.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


@app.callback()
def main_callback(
    log_level: str = typer.Option(
        None, "--log-level", help="Override ALKANEFORGE_LOG_LEVEL (and ALKANEFORGE_DEBUG)."
    ),
) -> None:
    """Configure logging before any command runs."""
    config = ForgeSettings()
    if log_level is None:
        log_level = "DEBUG" if config.debug else config.log_level
    configure_logging(log_level)


# Register subcommands
app.command(name="compile", help="Compile a contract source file.")(compile_cmd)
app.command(name="abi", help="Print the ABI extracted from a source file.")(abi_cmd)
app.command(name="hash", help="Print the content key of a source file.")(hash_cmd)
app.command(name="cache-list", help="List records in the artifact cache.")(cache_list_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
