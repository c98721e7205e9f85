"""Compilation error hierarchy.

Every failure a caller of ``CompilationOrchestrator.compile`` can observe is a
``CompilationError``.  All callers attached to the same in-flight build
receive the same exception instance.
"""

from __future__ import annotations


class CompilationError(RuntimeError):
    """Base class for all compilation failures.

    Parameters
    ----------
    message:
        Human-readable description.  May contain internal detail (paths,
        exit codes); boundary layers must not forward it to untrusted callers.
    key:
        The ContentKey of the build that failed, if known.
    """

    def __init__(self, message: str, *, key: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.key = key


class ToolchainInvocationError(CompilationError):
    """The external toolchain exited non-zero or produced no artifact."""

    def __init__(
        self,
        message: str,
        *,
        key: str = "",
        exit_code: int | None = None,
        stderr_tail: str = "",
    ) -> None:
        super().__init__(message, key=key)
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail


class BuildTimeoutError(CompilationError, TimeoutError):
    """The toolchain exceeded its wall-clock deadline and was terminated."""

    def __init__(self, message: str, *, key: str = "", timeout_seconds: float = 0.0) -> None:
        super().__init__(message, key=key)
        self.timeout_seconds = timeout_seconds


class BuildCancelledError(CompilationError):
    """The shared build task was cancelled before it produced an outcome."""


class CacheIOError(CompilationError):
    """Durable storage read or write failed."""


class WorkspaceError(CompilationError):
    """A build workspace could not be materialized."""


class ContentKeyCollisionError(CompilationError):
    """A cached record under this key was produced from different source."""
