"""Compilation orchestrator — the single entry point for compile requests.

The CompilationOrchestrator wires together the content hasher, ArtifactCache,
ConcurrencyLimiter, WorkspaceManager, toolchain and BuildCoordinator:

    hash source -> cache lookup (hit: backfill ABI if needed, return)
        -> miss: BuildCoordinator (dedup, limiter, toolchain, commit) -> return

The contract name is carried for logging and metadata only; identical source
under different names is a single cache entry.
"""

from __future__ import annotations

import asyncio
import logging
import time

from alkaneforge.config import ForgeSettings
from alkaneforge.core.abi_extractor import extract_abi
from alkaneforge.core.artifact_cache import ArtifactCache
from alkaneforge.core.build_coordinator import BuildCoordinator
from alkaneforge.core.errors import CompilationError, ContentKeyCollisionError
from alkaneforge.core.hasher import source_digest
from alkaneforge.core.limiter import ConcurrencyLimiter
from alkaneforge.core.toolchain import CargoToolchain, Toolchain
from alkaneforge.core.workspace import WorkspaceManager
from alkaneforge.models.artifacts import ArtifactRecord, CompileOutcome, CompileResult

logger = logging.getLogger(__name__)

DEFAULT_CONTRACT_NAME = "MyContract"


class CompilationOrchestrator:
    """Compile contract source to a binary plus ABI, with caching and dedup.

    Parameters
    ----------
    settings:
        Service configuration.  Uses ``ForgeSettings()`` if not provided.
    toolchain:
        Build backend.  Defaults to ``CargoToolchain`` built from settings.
    cache, workspaces, limiter:
        Override individual subsystems (tests, embedding).
    """

    def __init__(
        self,
        settings: ForgeSettings | None = None,
        *,
        toolchain: Toolchain | None = None,
        cache: ArtifactCache | None = None,
        workspaces: WorkspaceManager | None = None,
        limiter: ConcurrencyLimiter | None = None,
    ) -> None:
        self.settings = settings or ForgeSettings()

        self.cache = cache or ArtifactCache(self.settings.artifact_cache_root)
        self.workspaces = workspaces or WorkspaceManager.from_settings(self.settings)
        self.limiter = limiter or ConcurrencyLimiter(self.settings.concurrency_limit)
        self.toolchain = toolchain or CargoToolchain.from_settings(self.settings)
        self.coordinator = BuildCoordinator(
            self.cache, self.workspaces, self.toolchain, self.limiter
        )

    def content_key(self, digest: str) -> str:
        return digest[: self.settings.key_length]

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def compile(self, contract_name: str, source: str) -> CompileResult:
        """Compile *source*, returning the binary, its ABI and the outcome.

        Raises
        ------
        CompilationError
            Any failure; every caller attached to the same build sees the
            same error.
        """
        contract_name = contract_name or DEFAULT_CONTRACT_NAME
        started = time.monotonic()
        digest = source_digest(source)
        key = self.content_key(digest)
        logger.info(
            "compile:start contract=%s key=%s code_length=%d",
            contract_name,
            key,
            len(source),
        )

        try:
            record = await asyncio.to_thread(self.cache.lookup, key)
            if record is not None:
                outcome = CompileOutcome.CACHE_HIT
            else:
                record, outcome = await self.coordinator.build(
                    key, source, digest=digest, contract_name=contract_name
                )
            self._check_digest(record, digest)
            record, backfilled = await self._ensure_abi(record, source)
        except CompilationError as exc:
            logger.error(
                "compile:error contract=%s key=%s duration=%.2fs error=%s",
                contract_name,
                key,
                time.monotonic() - started,
                exc,
            )
            raise

        duration = time.monotonic() - started
        logger.info(
            "compile:success contract=%s key=%s outcome=%s duration=%.2fs size=%d",
            contract_name,
            key,
            outcome.value,
            duration,
            record.size_bytes,
        )
        return CompileResult(
            key=key,
            contract_name=contract_name,
            binary=record.binary,
            abi=record.abi,
            outcome=outcome,
            abi_backfilled=backfilled,
            duration_seconds=duration,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _check_digest(record: ArtifactRecord, digest: str) -> None:
        if record.digest and record.digest != digest:
            raise ContentKeyCollisionError(
                f"Cached record {record.key} was built from different source "
                f"(digest {record.digest[:16]}... != {digest[:16]}...)",
                key=record.key,
            )

    async def _ensure_abi(
        self, record: ArtifactRecord, source: str
    ) -> tuple[ArtifactRecord, bool]:
        """Recompute and persist the ABI for records stored without one."""
        if record.abi is not None:
            return record, False
        abi = extract_abi(source)
        await asyncio.to_thread(self.cache.store_abi, record.key, abi)
        return record.model_copy(update={"abi": abi}), True


_default_orchestrator: CompilationOrchestrator | None = None


def default_orchestrator() -> CompilationOrchestrator:
    """The process-wide orchestrator built from ``alkaneforge.config.settings``.

    Sharing one instance is what makes dedup and the concurrency bound
    process-wide.
    """
    global _default_orchestrator
    if _default_orchestrator is None:
        from alkaneforge.config import settings

        _default_orchestrator = CompilationOrchestrator(settings)
    return _default_orchestrator


async def compile_contract(contract_name: str, source: str) -> CompileResult:
    """Compile through the process-wide orchestrator."""
    return await default_orchestrator().compile(contract_name, source)
