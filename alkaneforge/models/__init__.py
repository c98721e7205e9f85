"""alkaneforge data models — all Pydantic v2, all frozen (immutable)."""

from alkaneforge.models.abi import AbiDescription, AbiInput, AbiMethod, StorageSlot
from alkaneforge.models.artifacts import ArtifactRecord, CompileOutcome, CompileResult
from alkaneforge.models.builds import (
    VALID_TRANSITIONS,
    BuildState,
    BuildWorkspace,
    ToolchainRun,
)

__all__ = [
    # abi
    "AbiInput",
    "AbiMethod",
    "StorageSlot",
    "AbiDescription",
    # artifacts
    "ArtifactRecord",
    "CompileOutcome",
    "CompileResult",
    # builds
    "BuildState",
    "VALID_TRANSITIONS",
    "BuildWorkspace",
    "ToolchainRun",
]
