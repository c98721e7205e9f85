"""alkaneforge CLI — Typer-based command-line interface.

Provides the ``alkaneforge`` command with subcommands for compiling contract
sources, inspecting extracted ABIs and content keys, and listing the
artifact cache.

All output uses Rich for formatted terminal display.
"""
