"""External toolchain invocation.

Defines the ``Toolchain`` Protocol the build coordinator depends on, and the
default ``CargoToolchain`` that runs ``cargo build`` as a subprocess with a
per-key ``CARGO_TARGET_DIR`` and an optional ``sccache`` wrapper.  Output is
streamed to the log while the process runs; the process is terminated if it
exceeds its deadline or the awaiting task is cancelled.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import time
from collections import deque
from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from alkaneforge.config import ForgeSettings
from alkaneforge.core.errors import BuildTimeoutError, ToolchainInvocationError
from alkaneforge.models.builds import BuildWorkspace, ToolchainRun

logger = logging.getLogger(__name__)

# stderr lines that are real compiler errors rather than progress chatter
_ERROR_LINE = re.compile(r"error(\[E\d+\])?:", re.IGNORECASE)

_TERMINATE_GRACE_SECONDS = 5.0

# Output is read in chunks; a line longer than this is logged in pieces.
_MAX_LINE_BYTES = 64 * 1024


@runtime_checkable
class Toolchain(Protocol):
    """Protocol for build backends.

    ``invoke`` must either leave the binary at
    ``workspace.expected_artifact`` and return a ``ToolchainRun``, or raise a
    ``CompilationError``.
    """

    async def invoke(self, workspace: BuildWorkspace) -> ToolchainRun:
        ...


class CargoToolchain:
    """Runs ``cargo build --release`` for a workspace.

    Parameters
    ----------
    cargo_bin:
        Cargo executable.
    target_triple:
        Compilation target passed as ``--target``.
    timeout_seconds:
        Wall-clock deadline for one invocation.
    rustc_wrapper:
        Optional ``RUSTC_WRAPPER`` (typically ``sccache``).
    accelerator_dir:
        ``SCCACHE_DIR`` exported alongside the wrapper.
    stderr_tail_lines:
        How many trailing stderr lines to keep for error reports.
    command:
        Full argv override; replaces the cargo command line.
    """

    def __init__(
        self,
        *,
        cargo_bin: str = "cargo",
        target_triple: str = "wasm32-unknown-unknown",
        timeout_seconds: float = 300.0,
        rustc_wrapper: str | None = None,
        accelerator_dir: os.PathLike | str | None = None,
        stderr_tail_lines: int = 40,
        command: Sequence[str] | None = None,
    ) -> None:
        self._cargo_bin = cargo_bin
        self._target_triple = target_triple
        self._timeout = timeout_seconds
        self._rustc_wrapper = rustc_wrapper
        self._accelerator_dir = accelerator_dir
        self._tail_lines = stderr_tail_lines
        self._command = list(command) if command is not None else None

    @classmethod
    def from_settings(cls, settings: ForgeSettings) -> CargoToolchain:
        return cls(
            cargo_bin=settings.cargo_bin,
            target_triple=settings.target_triple,
            timeout_seconds=settings.build_timeout_seconds,
            rustc_wrapper=settings.rustc_wrapper,
            accelerator_dir=settings.toolchain_cache_root,
            stderr_tail_lines=settings.stderr_tail_lines,
        )

    def command(self) -> list[str]:
        if self._command is not None:
            return list(self._command)
        return [self._cargo_bin, "build", f"--target={self._target_triple}", "--release"]

    def environment(self, workspace: BuildWorkspace) -> dict[str, str]:
        env = dict(os.environ)
        env["CARGO_TARGET_DIR"] = str(workspace.target_dir)
        if self._rustc_wrapper:
            env["RUSTC_WRAPPER"] = self._rustc_wrapper
            if self._accelerator_dir is not None:
                os.makedirs(self._accelerator_dir, exist_ok=True)
                env["SCCACHE_DIR"] = str(self._accelerator_dir)
        return env

    # ------------------------------------------------------------------
    # Invocation
    # ------------------------------------------------------------------

    async def invoke(self, workspace: BuildWorkspace) -> ToolchainRun:
        key = workspace.key
        argv = self.command()
        started = time.monotonic()
        logger.info("cargo:start key=%s target_dir=%s", key, workspace.target_dir)

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(workspace.root),
                env=self.environment(workspace),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise ToolchainInvocationError(
                f"Could not start toolchain {argv[0]!r}: {exc}", key=key
            ) from exc

        tail: deque[str] = deque(maxlen=self._tail_lines)
        try:
            async with asyncio.timeout(self._timeout):
                await asyncio.gather(
                    self._pump(proc.stdout, key, "stdout", None),
                    self._pump(proc.stderr, key, "stderr", tail),
                )
                exit_code = await proc.wait()
        except TimeoutError:
            logger.error("cargo:timeout key=%s after=%.1fs", key, self._timeout)
            raise BuildTimeoutError(
                f"Toolchain exceeded {self._timeout:.1f}s deadline",
                key=key,
                timeout_seconds=self._timeout,
            ) from None
        finally:
            if proc.returncode is None:
                await self._terminate(proc)

        duration = time.monotonic() - started
        stderr_tail = "\n".join(tail)
        if exit_code != 0:
            logger.error("cargo:failed key=%s code=%s", key, exit_code)
            raise ToolchainInvocationError(
                f"Cargo build failed with code {exit_code}",
                key=key,
                exit_code=exit_code,
                stderr_tail=stderr_tail,
            )

        logger.info("cargo:done key=%s duration=%.2fs", key, duration)
        return ToolchainRun(exit_code=exit_code, duration_seconds=duration, stderr_tail=stderr_tail)

    @staticmethod
    async def _pump(
        stream: asyncio.StreamReader | None,
        key: str,
        channel: str,
        tail: deque[str] | None,
    ) -> None:
        if stream is None:
            return
        pending = b""
        while True:
            chunk = await stream.read(_MAX_LINE_BYTES)
            if not chunk:
                break
            pending += chunk
            *lines, pending = pending.split(b"\n")
            while len(pending) >= _MAX_LINE_BYTES:
                lines.append(pending[:_MAX_LINE_BYTES])
                pending = pending[_MAX_LINE_BYTES:]
            for raw in lines:
                CargoToolchain._emit(raw, key, channel, tail)
        if pending:
            CargoToolchain._emit(pending, key, channel, tail)

    @staticmethod
    def _emit(raw: bytes, key: str, channel: str, tail: deque[str] | None) -> None:
        line = raw.decode("utf-8", errors="replace").rstrip()
        if not line:
            return
        if tail is not None:
            tail.append(line)
        if channel == "stderr" and _ERROR_LINE.search(line):
            logger.error("cargo:%s key=%s %s", channel, key, line)
        else:
            logger.info("cargo:%s key=%s %s", channel, key, line)

    @staticmethod
    async def _terminate(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is not None:
            return
        try:
            proc.terminate()
            try:
                await asyncio.wait_for(proc.wait(), _TERMINATE_GRACE_SECONDS)
            except TimeoutError:
                proc.kill()
                await proc.wait()
        except ProcessLookupError:
            return
