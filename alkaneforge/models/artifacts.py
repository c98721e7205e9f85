"""Cached artifact and compile result models (write-once per ContentKey)."""

from __future__ import annotations

import base64
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from alkaneforge.models.abi import AbiDescription


class ArtifactRecord(BaseModel):
    """A compiled binary paired with its interface description.

    ``abi`` is ``None`` only when a record was found on disk without its ABI
    side-car; the orchestrator backfills it before returning to a caller.
    ``digest`` is the full SHA-256 of the normalized source, or empty for
    records written without metadata.
    """

    model_config = ConfigDict(frozen=True)

    key: str
    binary: bytes
    abi: AbiDescription | None = None
    digest: str = ""
    contract_name: str = ""
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def size_bytes(self) -> int:
        return len(self.binary)

    def metadata(self) -> dict[str, Any]:
        """The JSON-safe side-car stored next to the binary."""
        return {
            "key": self.key,
            "digest": self.digest,
            "contract_name": self.contract_name,
            "size_bytes": self.size_bytes,
            "created_at": self.created_at.isoformat(),
        }


class CompileOutcome(str, Enum):
    """How a compile request was satisfied."""

    CACHE_HIT = "cache_hit"
    JOINED = "joined"
    BUILT = "built"


class CompileResult(BaseModel):
    """What ``CompilationOrchestrator.compile`` hands back to its caller."""

    model_config = ConfigDict(frozen=True)

    key: str
    contract_name: str
    binary: bytes
    abi: AbiDescription
    outcome: CompileOutcome
    abi_backfilled: bool = False
    duration_seconds: float = 0.0

    def gzipped(self, level: int = 9) -> bytes:
        """Return the binary gzip-compressed for transport."""
        from alkaneforge.core.compression import gzip_artifact

        return gzip_artifact(self.binary, level=level)

    def as_payload(self) -> dict[str, Any]:
        """``{binary, abi}`` with the binary base64-encoded."""
        return {
            "binary": base64.b64encode(self.binary).decode("ascii"),
            "abi": self.abi.to_payload(),
        }
