"""Build-cache and compilation-orchestration engine."""

from alkaneforge.core.abi_extractor import extract_abi
from alkaneforge.core.artifact_cache import ArtifactCache
from alkaneforge.core.build_coordinator import BuildCoordinator
from alkaneforge.core.errors import (
    BuildCancelledError,
    BuildTimeoutError,
    CacheIOError,
    CompilationError,
    ContentKeyCollisionError,
    ToolchainInvocationError,
    WorkspaceError,
)
from alkaneforge.core.hasher import content_key, normalize_source, source_digest
from alkaneforge.core.limiter import ConcurrencyLimiter
from alkaneforge.core.orchestrator import CompilationOrchestrator, compile_contract
from alkaneforge.core.toolchain import CargoToolchain, Toolchain
from alkaneforge.core.workspace import WorkspaceManager

__all__ = [
    "ArtifactCache",
    "BuildCoordinator",
    "CargoToolchain",
    "CompilationOrchestrator",
    "ConcurrencyLimiter",
    "Toolchain",
    "WorkspaceManager",
    "compile_contract",
    "content_key",
    "extract_abi",
    "normalize_source",
    "source_digest",
    # errors
    "CompilationError",
    "ToolchainInvocationError",
    "BuildTimeoutError",
    "BuildCancelledError",
    "CacheIOError",
    "WorkspaceError",
    "ContentKeyCollisionError",
]
