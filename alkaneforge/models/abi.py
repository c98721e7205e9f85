"""Interface description models extracted from contract source.

The JSON shape of ``AbiDescription`` is a durable on-disk contract: cache
records written by one version must stay readable by the next.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

DEFAULT_CONTRACT_NAME = "UnknownContract"
DEFAULT_ABI_VERSION = "1.0.0"
DEFAULT_STORAGE_TYPE = "Vec<u8>"


class AbiInput(BaseModel):
    """A single named method input; ``type`` is an opaque source string."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: str


class AbiMethod(BaseModel):
    """A callable entry point identified by its opcode."""

    model_config = ConfigDict(frozen=True)

    opcode: int
    name: str
    inputs: list[AbiInput] = []
    outputs: list[str] = []
    doc: str | None = None


class StorageSlot(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    type: str = DEFAULT_STORAGE_TYPE


class AbiDescription(BaseModel):
    """Best-effort description of a contract's callable surface.

    ``opcodes`` maps each extracted method name to its opcode.  Opcodes are
    not required to be unique or contiguous.
    """

    model_config = ConfigDict(frozen=True)

    name: str = DEFAULT_CONTRACT_NAME
    version: str = DEFAULT_ABI_VERSION
    methods: list[AbiMethod] = []
    storage: list[StorageSlot] = []
    opcodes: dict[str, int] = {}

    def to_json(self) -> str:
        """Serialize to the on-disk JSON shape (``doc`` omitted when unset)."""
        return self.model_dump_json(indent=2, exclude_none=True)

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)
