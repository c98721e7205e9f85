"""Build lifecycle models — dedup lock states, workspaces, toolchain runs."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict


class BuildState(str, Enum):
    """Per-key dedup lock state."""

    UNLOCKED = "unlocked"
    LOCKED = "locked"


# Valid dedup-lock transitions.  A key cycles UNLOCKED -> LOCKED -> UNLOCKED.
VALID_TRANSITIONS: dict[BuildState, set[BuildState]] = {
    BuildState.UNLOCKED: {BuildState.LOCKED},
    BuildState.LOCKED: {BuildState.UNLOCKED},
}


class BuildWorkspace(BaseModel):
    """An isolated project tree for one build attempt.

    ``root`` is ephemeral and owned by exactly one build.  ``target_dir`` is
    the durable per-key toolchain output directory and outlives the workspace.
    """

    model_config = ConfigDict(frozen=True)

    key: str
    root: Path
    crate_name: str
    target_dir: Path
    target_triple: str

    @property
    def manifest_path(self) -> Path:
        return self.root / "Cargo.toml"

    @property
    def source_path(self) -> Path:
        return self.root / "src" / "lib.rs"

    @property
    def expected_artifact(self) -> Path:
        """Where the toolchain writes the binary for this crate name."""
        return self.target_dir / self.target_triple / "release" / f"{self.crate_name}.wasm"


class ToolchainRun(BaseModel):
    """Summary of a successful toolchain invocation."""

    model_config = ConfigDict(frozen=True)

    exit_code: int
    duration_seconds: float
    stderr_tail: str = ""
