"""Per-key build deduplication and execution.

The coordinator owns a mapping ContentKey -> in-flight build task.  The first
caller for a key starts the task (UNLOCKED -> LOCKED); later callers for the
same key attach to it and receive the same record or the same exception.
The entry is removed (LOCKED -> UNLOCKED) as soon as the task finishes, after
the record has been committed to the cache.

The build itself runs as its own task, so a caller that goes away does not
abort a build other callers are waiting on.

Build lifecycle for a single key:

    double-check cache -> materialize workspace -> [limiter] toolchain
        -> read artifact -> extract ABI -> commit -> release workspace
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from alkaneforge.core.abi_extractor import extract_abi
from alkaneforge.core.artifact_cache import ArtifactCache
from alkaneforge.core.errors import (
    BuildCancelledError,
    CacheIOError,
    CompilationError,
    ToolchainInvocationError,
)
from alkaneforge.core.limiter import ConcurrencyLimiter
from alkaneforge.core.toolchain import Toolchain
from alkaneforge.core.workspace import WorkspaceManager
from alkaneforge.models.abi import AbiDescription
from alkaneforge.models.artifacts import ArtifactRecord, CompileOutcome
from alkaneforge.models.builds import VALID_TRANSITIONS, BuildState, BuildWorkspace

logger = logging.getLogger(__name__)


class InvalidBuildTransitionError(RuntimeError):
    """Raised when the dedup lock table is driven into an impossible state."""


class BuildCoordinator:
    """Runs at most one build per ContentKey and fans the outcome out.

    Parameters
    ----------
    cache:
        Where finished records are committed.
    workspaces:
        Creates and releases isolated build trees.
    toolchain:
        The external compiler backend.
    limiter:
        Bounds concurrent toolchain invocations.  Only the invocation step
        holds a slot.
    extractor:
        ABI extractor, ``extract_abi`` by default.
    """

    def __init__(
        self,
        cache: ArtifactCache,
        workspaces: WorkspaceManager,
        toolchain: Toolchain,
        limiter: ConcurrencyLimiter,
        *,
        extractor: Callable[[str], AbiDescription] = extract_abi,
    ) -> None:
        self._cache = cache
        self._workspaces = workspaces
        self._toolchain = toolchain
        self._limiter = limiter
        self._extract = extractor
        self._inflight: dict[str, asyncio.Task[tuple[ArtifactRecord, bool]]] = {}
        self.invocations = 0

    # ------------------------------------------------------------------
    # Dedup lock table
    # ------------------------------------------------------------------

    def state(self, key: str) -> BuildState:
        return BuildState.LOCKED if key in self._inflight else BuildState.UNLOCKED

    @property
    def inflight_keys(self) -> list[str]:
        return sorted(self._inflight)

    def _transition(self, key: str, target: BuildState) -> None:
        current = self.state(key)
        if target not in VALID_TRANSITIONS[current]:
            raise InvalidBuildTransitionError(
                f"Cannot transition build {key} from {current.value} to {target.value}"
            )

    def _lock(self, key: str, task: asyncio.Task[tuple[ArtifactRecord, bool]]) -> None:
        self._transition(key, BuildState.LOCKED)
        self._inflight[key] = task
        task.add_done_callback(lambda finished: self._unlock(key, finished))

    def _unlock(self, key: str, task: asyncio.Task[tuple[ArtifactRecord, bool]]) -> None:
        if self._inflight.get(key) is task:
            self._transition(key, BuildState.UNLOCKED)
            del self._inflight[key]

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def build(
        self, key: str, source: str, *, digest: str = "", contract_name: str = ""
    ) -> tuple[ArtifactRecord, CompileOutcome]:
        """Build *source* under *key*, or attach to the build already running.

        Returns the committed record and how this call was satisfied:
        ``BUILT`` for the caller that started the build, ``JOINED`` for
        callers that attached to it, ``CACHE_HIT`` if the post-lock cache
        check found a record.
        """
        task = self._inflight.get(key)
        if task is not None:
            logger.info("build:attach key=%s contract=%s", key, contract_name)
            record, _ = await self._await_shared(key, task)
            return record, CompileOutcome.JOINED

        task = asyncio.create_task(
            self._run(key, source, digest=digest, contract_name=contract_name),
            name=f"alkaneforge-build-{key}",
        )
        self._lock(key, task)
        record, rechecked = await self._await_shared(key, task)
        return record, CompileOutcome.CACHE_HIT if rechecked else CompileOutcome.BUILT

    @staticmethod
    async def _await_shared(
        key: str, task: asyncio.Task[tuple[ArtifactRecord, bool]]
    ) -> tuple[ArtifactRecord, bool]:
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                raise BuildCancelledError(f"Build for {key} was cancelled", key=key) from None
            raise

    # ------------------------------------------------------------------
    # Build body
    # ------------------------------------------------------------------

    async def _run(
        self, key: str, source: str, *, digest: str, contract_name: str
    ) -> tuple[ArtifactRecord, bool]:
        # Another process may have committed this key since the caller's miss.
        existing = await asyncio.to_thread(self._cache.lookup, key)
        if existing is not None:
            logger.info("build:recheck_hit key=%s", key)
            return existing, True

        workspace = await self._create_workspace(key, source)
        try:
            async with self._limiter.slot():
                self.invocations += 1
                run = await self._toolchain.invoke(workspace)
            logger.info(
                "build:toolchain_done key=%s exit_code=%d duration=%.2fs",
                key,
                run.exit_code,
                run.duration_seconds,
            )
            if run.stderr_tail:
                logger.debug("build:stderr_tail key=%s\n%s", key, run.stderr_tail)
            binary = await asyncio.to_thread(self._read_artifact, workspace)
            abi = self._extract(source)
            record = await asyncio.to_thread(
                self._cache.commit,
                key,
                binary,
                abi,
                digest=digest,
                contract_name=contract_name,
            )
        except CompilationError:
            raise
        except Exception as exc:
            logger.exception("build:unexpected_error key=%s", key)
            raise CompilationError(f"Build for {key} failed: {exc}", key=key) from exc
        finally:
            await asyncio.to_thread(self._workspaces.release, workspace)

        return record, False

    async def _create_workspace(self, key: str, source: str) -> BuildWorkspace:
        pending = asyncio.ensure_future(
            asyncio.to_thread(self._workspaces.create, key, source)
        )
        try:
            return await asyncio.shield(pending)
        except asyncio.CancelledError:
            # The worker thread keeps running; remove whatever it creates.
            pending.add_done_callback(self._release_orphan)
            raise

    def _release_orphan(self, pending: asyncio.Future[BuildWorkspace]) -> None:
        if pending.cancelled() or pending.exception() is not None:
            return
        workspace = pending.result()
        logger.info("build:orphan_workspace_released key=%s", workspace.key)
        self._workspaces.release(workspace)

    @staticmethod
    def _read_artifact(workspace: BuildWorkspace) -> bytes:
        path = workspace.expected_artifact
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise ToolchainInvocationError(
                f"Toolchain succeeded but produced no artifact at {path}",
                key=workspace.key,
                exit_code=0,
            ) from None
        except OSError as exc:
            raise CacheIOError(
                f"Cannot read build output {path}: {exc}", key=workspace.key
            ) from exc
