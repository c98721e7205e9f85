"""Tests for BuildCoordinator — per-key dedup, lock table and build body."""

from __future__ import annotations

import asyncio
import logging
import threading

import pytest

from alkaneforge.core.build_coordinator import BuildCoordinator, InvalidBuildTransitionError
from alkaneforge.core.errors import (
    BuildCancelledError,
    CompilationError,
    ToolchainInvocationError,
)
from alkaneforge.core.hasher import content_key
from alkaneforge.core.limiter import ConcurrencyLimiter
from alkaneforge.core.workspace import WorkspaceManager
from alkaneforge.models.abi import AbiDescription
from alkaneforge.models.artifacts import CompileOutcome
from alkaneforge.models.builds import BuildState, BuildWorkspace

SOURCE = "pub struct Counter;\n#[opcode(0)]\nInitialize,"
KEY = content_key(SOURCE)


async def _until_locked(coordinator: BuildCoordinator, key: str) -> None:
    for _ in range(200):
        if coordinator.state(key) is BuildState.LOCKED:
            return
        await asyncio.sleep(0.005)
    raise AssertionError(f"build for {key} never started")


class TestBuild:
    @pytest.mark.asyncio
    async def test_build_commits_record(self, make_coordinator, artifact_cache):
        coordinator = make_coordinator()
        record, outcome = await coordinator.build(KEY, SOURCE, contract_name="Counter")
        assert outcome is CompileOutcome.BUILT
        assert record.binary.startswith(b"\x00asm")
        assert record.abi.name == "Counter"
        assert coordinator.invocations == 1
        assert artifact_cache.lookup(KEY).binary == record.binary
        assert artifact_cache.lookup(KEY).contract_name == "Counter"

    @pytest.mark.asyncio
    async def test_lock_held_only_while_in_flight(self, make_coordinator, make_toolchain):
        gate = asyncio.Event()
        coordinator = make_coordinator(make_toolchain(gate=gate))
        assert coordinator.state(KEY) is BuildState.UNLOCKED

        build = asyncio.create_task(coordinator.build(KEY, SOURCE))
        await _until_locked(coordinator, KEY)
        assert coordinator.inflight_keys == [KEY]

        gate.set()
        await build
        assert coordinator.state(KEY) is BuildState.UNLOCKED
        assert coordinator.inflight_keys == []

    @pytest.mark.asyncio
    async def test_second_caller_joins(self, make_coordinator, make_toolchain):
        gate = asyncio.Event()
        toolchain = make_toolchain(gate=gate)
        coordinator = make_coordinator(toolchain)

        first = asyncio.create_task(coordinator.build(KEY, SOURCE))
        await _until_locked(coordinator, KEY)
        second = asyncio.create_task(coordinator.build(KEY, SOURCE))
        await asyncio.sleep(0)
        gate.set()

        (rec_a, out_a), (rec_b, out_b) = await asyncio.gather(first, second)
        assert out_a is CompileOutcome.BUILT
        assert out_b is CompileOutcome.JOINED
        assert rec_a == rec_b
        assert toolchain.calls == [KEY]

    @pytest.mark.asyncio
    async def test_recheck_finds_committed_record(
        self, make_coordinator, make_toolchain, artifact_cache
    ):
        artifact_cache.commit(KEY, b"from-elsewhere", AbiDescription(name="Counter"))
        toolchain = make_toolchain()
        coordinator = make_coordinator(toolchain)
        record, outcome = await coordinator.build(KEY, SOURCE)
        assert outcome is CompileOutcome.CACHE_HIT
        assert record.binary == b"from-elsewhere"
        assert toolchain.calls == []

    @pytest.mark.asyncio
    async def test_workspace_released_after_success(self, make_coordinator, settings):
        await make_coordinator().build(KEY, SOURCE)
        assert list(settings.build_root.iterdir()) == []


class TestBuildFailures:
    @pytest.mark.asyncio
    async def test_toolchain_failure_commits_nothing(
        self, make_coordinator, make_toolchain, artifact_cache, settings
    ):
        coordinator = make_coordinator(make_toolchain(fail=True))
        with pytest.raises(ToolchainInvocationError):
            await coordinator.build(KEY, SOURCE)
        assert artifact_cache.lookup(KEY) is None
        assert coordinator.state(KEY) is BuildState.UNLOCKED
        assert list(settings.build_root.iterdir()) == []

    @pytest.mark.asyncio
    async def test_failure_is_not_cached(self, make_coordinator, make_toolchain):
        toolchain = make_toolchain(fail=True)
        coordinator = make_coordinator(toolchain)
        with pytest.raises(ToolchainInvocationError):
            await coordinator.build(KEY, SOURCE)
        toolchain.fail = False
        _, outcome = await coordinator.build(KEY, SOURCE)
        assert outcome is CompileOutcome.BUILT
        assert len(toolchain.calls) == 2

    @pytest.mark.asyncio
    async def test_clean_exit_without_artifact(self, make_coordinator, make_toolchain):
        coordinator = make_coordinator(make_toolchain(write_artifact=False))
        with pytest.raises(ToolchainInvocationError) as excinfo:
            await coordinator.build(KEY, SOURCE)
        assert excinfo.value.exit_code == 0
        assert "produced no artifact" in str(excinfo.value)

    @pytest.mark.asyncio
    async def test_unexpected_error_wrapped(
        self, artifact_cache, workspace_manager, make_toolchain
    ):
        def broken_extractor(source: str) -> AbiDescription:
            raise ValueError("extractor exploded")

        coordinator = BuildCoordinator(
            artifact_cache,
            workspace_manager,
            make_toolchain(),
            ConcurrencyLimiter(1),
            extractor=broken_extractor,
        )
        with pytest.raises(CompilationError) as excinfo:
            await coordinator.build(KEY, SOURCE)
        assert isinstance(excinfo.value.__cause__, ValueError)
        assert excinfo.value.key == KEY
        assert artifact_cache.lookup(KEY) is None


class TestLockTable:
    def test_unlock_of_idle_key_rejected(self, make_coordinator):
        coordinator = make_coordinator()
        with pytest.raises(InvalidBuildTransitionError):
            coordinator._transition(KEY, BuildState.UNLOCKED)


class _SlowWorkspaceManager(WorkspaceManager):
    """Blocks inside ``create`` until the test lets it finish."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.entered = threading.Event()
        self.proceed = threading.Event()
        self.created: list[BuildWorkspace] = []

    def create(self, key: str, source: str) -> BuildWorkspace:
        self.entered.set()
        self.proceed.wait(5)
        workspace = super().create(key, source)
        self.created.append(workspace)
        return workspace


class TestBuildDiagnostics:
    @pytest.mark.asyncio
    async def test_toolchain_run_is_logged(self, make_coordinator, make_toolchain, caplog):
        caplog.set_level(logging.INFO, logger="alkaneforge.core.build_coordinator")
        await make_coordinator(make_toolchain(delay=0.01)).build(KEY, SOURCE)
        assert f"build:toolchain_done key={KEY} exit_code=0" in caplog.text

    @pytest.mark.asyncio
    async def test_workspace_created_after_cancellation_is_released(
        self, artifact_cache, make_toolchain, settings
    ):
        manager = _SlowWorkspaceManager(settings.build_root, settings.target_root)
        toolchain = make_toolchain()
        coordinator = BuildCoordinator(artifact_cache, manager, toolchain, ConcurrencyLimiter(1))

        caller = asyncio.create_task(coordinator.build(KEY, SOURCE))
        assert await asyncio.to_thread(manager.entered.wait, 5)
        coordinator._inflight[KEY].cancel()
        with pytest.raises(BuildCancelledError):
            await caller

        manager.proceed.set()
        for _ in range(400):
            if manager.created and not manager.created[0].root.exists():
                break
            await asyncio.sleep(0.005)
        (workspace,) = manager.created
        assert not workspace.root.exists()
        assert toolchain.calls == []
