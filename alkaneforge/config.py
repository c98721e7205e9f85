"""Service configuration — env-driven.

Centralized config using pydantic-settings. Reads from a .env file and
ALKANEFORGE_* environment variables.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ForgeSettings(BaseSettings):
    """Compiler service configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export ALKANEFORGE_CONCURRENCY_LIMIT=4
        export ALKANEFORGE_ARTIFACT_CACHE_ROOT=/mnt/cache/artifacts
        export ALKANEFORGE_RUSTC_WRAPPER=/usr/local/cargo/bin/sccache

    Or via .env file::

        ALKANEFORGE_CLEANUP_WORKSPACES=false
        ALKANEFORGE_BUILD_TIMEOUT_SECONDS=120
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="ALKANEFORGE_",
        env_file_encoding="utf-8",
    )

    log_level: str = "INFO"
    debug: bool = False

    # Filesystem roots
    build_root: Path = Path("/tmp/alkaneforge/builds")
    artifact_cache_root: Path = Path(".alkaneforge/artifacts")
    toolchain_cache_root: Path = Path(".alkaneforge/sccache")
    target_root: Path = Path(".alkaneforge/target")

    # Build scheduling
    concurrency_limit: int = Field(default=2, ge=1)
    cleanup_workspaces: bool = True
    build_timeout_seconds: float = Field(default=300.0, gt=0)

    # Toolchain
    cargo_bin: str = "cargo"
    target_triple: str = "wasm32-unknown-unknown"
    rustc_wrapper: str | None = None  # e.g. /usr/local/cargo/bin/sccache
    crate_name: str = Field(default="alkanes_contract", pattern=r"^[A-Za-z_][A-Za-z0-9_]*$")
    crate_name_strategy: Literal["fixed", "hash_suffixed"] = "fixed"
    cargo_template_path: Path | None = None
    stderr_tail_lines: int = Field(default=40, ge=0)

    # Content keys
    key_length: int = Field(default=12, ge=8, le=64)


# Shared instance; import as `from alkaneforge.config import settings`
settings = ForgeSettings()
