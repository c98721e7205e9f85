"""Shared test fixtures for alkaneforge."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from alkaneforge.config import ForgeSettings
from alkaneforge.core.artifact_cache import ArtifactCache
from alkaneforge.core.build_coordinator import BuildCoordinator
from alkaneforge.core.errors import ToolchainInvocationError
from alkaneforge.core.limiter import ConcurrencyLimiter
from alkaneforge.core.orchestrator import CompilationOrchestrator
from alkaneforge.core.workspace import WorkspaceManager
from alkaneforge.models.builds import BuildWorkspace, ToolchainRun

WASM_MAGIC = b"\x00asm\x01\x00\x00\x00"

OWNED_TOKEN_SOURCE = """\
use alkanes_runtime::{declare_alkane, message::MessageDispatch, runtime::AlkaneResponder};
use alkanes_runtime::storage::StoragePointer;
use alkanes_support::{id::AlkaneId, response::CallResponse};
use metashrew_support::index_pointer::KeyValuePointer;
use anyhow::Result;

#[derive(Default)]
pub struct OwnedToken(());

#[derive(MessageDispatch)]
enum OwnedTokenMessage {
    /// Set up the token supply and owner.
    #[opcode(0)]
    Initialize {
        token_units: u128,
        owner: AlkaneId,
    },

    #[opcode(77)]
    Mint { token_units: u128 },

    #[opcode(99)]
    #[returns(String)]
    GetName,

    #[opcode(101)]
    #[returns(u128)]
    GetTotalSupply,

    #[opcode(1000)]
    #[returns(Vec<u8>)]
    GetData,
}

impl OwnedToken {
    fn total_supply_pointer(&self) -> StoragePointer {
        StoragePointer::from_keyword("/totalsupply")
    }

    fn name_pointer(&self) -> StoragePointer {
        StoragePointer::from_keyword("/name")
    }

    fn set_total_supply(&self, v: u128) {
        StoragePointer::from_keyword("/totalsupply").set_value::<u128>(v);
    }
}

impl AlkaneResponder for OwnedToken {}

declare_alkane! {
    impl AlkaneResponder for OwnedToken {
        type Message = OwnedTokenMessage;
    }
}
"""


def wasm_for(workspace: BuildWorkspace) -> bytes:
    """Deterministic fake binary: WASM magic followed by the workspace source."""
    return WASM_MAGIC + workspace.source_path.read_bytes()


class FakeToolchain:
    """In-process toolchain double that records every invocation.

    Parameters
    ----------
    delay:
        Seconds to sleep inside each invocation.
    fail:
        Raise ``ToolchainInvocationError`` instead of producing output.
    write_artifact:
        When False, "succeed" without writing the expected binary.
    gate:
        If set, every invocation blocks until the event is set.
    """

    def __init__(
        self,
        *,
        delay: float = 0.0,
        fail: bool = False,
        write_artifact: bool = True,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.delay = delay
        self.fail = fail
        self.write_artifact = write_artifact
        self.gate = gate
        self.calls: list[str] = []
        self.workspaces: list[BuildWorkspace] = []
        self.active = 0
        self.max_active = 0

    async def invoke(self, workspace: BuildWorkspace) -> ToolchainRun:
        self.calls.append(workspace.key)
        self.workspaces.append(workspace)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.fail:
                raise ToolchainInvocationError(
                    "Cargo build failed with code 101",
                    key=workspace.key,
                    exit_code=101,
                    stderr_tail="error[E0425]: cannot find value `x` in this scope",
                )
            if self.write_artifact:
                workspace.expected_artifact.parent.mkdir(parents=True, exist_ok=True)
                workspace.expected_artifact.write_bytes(wasm_for(workspace))
        finally:
            self.active -= 1
        return ToolchainRun(exit_code=0, duration_seconds=self.delay)


@pytest.fixture
def tmp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test artifacts."""
    return tmp_path


@pytest.fixture
def settings(tmp_dir: Path) -> ForgeSettings:
    """ForgeSettings with every filesystem root under the temp directory."""
    return ForgeSettings(
        build_root=tmp_dir / "builds",
        artifact_cache_root=tmp_dir / "artifacts",
        toolchain_cache_root=tmp_dir / "sccache",
        target_root=tmp_dir / "target",
    )


@pytest.fixture
def artifact_cache(settings: ForgeSettings) -> ArtifactCache:
    """Provide a fresh ArtifactCache in a temp directory."""
    return ArtifactCache(settings.artifact_cache_root)


@pytest.fixture
def workspace_manager(settings: ForgeSettings) -> WorkspaceManager:
    return WorkspaceManager.from_settings(settings)


@pytest.fixture
def fake_toolchain() -> FakeToolchain:
    return FakeToolchain()


@pytest.fixture
def contract_source() -> str:
    """A representative annotated contract."""
    return OWNED_TOKEN_SOURCE


@pytest.fixture
def make_orchestrator(
    settings: ForgeSettings,
) -> Callable[..., CompilationOrchestrator]:
    """Factory fixture: an orchestrator over temp dirs with a chosen toolchain."""

    def _factory(
        toolchain: Any | None = None,
        *,
        concurrency_limit: int = 2,
        **overrides: Any,
    ) -> CompilationOrchestrator:
        configured = settings.model_copy(
            update={"concurrency_limit": concurrency_limit, **overrides}
        )
        return CompilationOrchestrator(
            configured,
            toolchain=toolchain or FakeToolchain(),
            limiter=ConcurrencyLimiter(concurrency_limit),
        )

    return _factory


@pytest.fixture
def make_toolchain() -> Callable[..., FakeToolchain]:
    """Factory fixture for configured FakeToolchain instances."""
    return FakeToolchain


@pytest.fixture
def make_coordinator(
    artifact_cache: ArtifactCache, workspace_manager: WorkspaceManager
) -> Callable[..., BuildCoordinator]:
    def _factory(toolchain: Any | None = None, *, limit: int = 2) -> BuildCoordinator:
        return BuildCoordinator(
            artifact_cache,
            workspace_manager,
            toolchain or FakeToolchain(),
            ConcurrencyLimiter(limit),
        )

    return _factory
